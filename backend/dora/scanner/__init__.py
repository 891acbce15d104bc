# dora/scanner/__init__.py
"""
Service introspection pipeline.

Usage:
    from dora.scanner import ScanOrchestrator

    orchestrator = ScanOrchestrator.from_config(app.config)
    stats = orchestrator.run()

Architecture:
    Orchestrator
    ├── Descriptor loader   — launchd property lists (Label, Program, MachServices, ...)
    ├── Mach-O sniffer      — magic-number pre-filter for the binary sweep
    └── Capabilities (one external tool each)
        ├── IdentifyCapability         — codesign -dv
        ├── EntitlementsCapability     — codesign --entitlements | plutil
        ├── DependenciesCapability     — otool -L
        └── ImportedSymbolsCapability  — nm -u --arch=<arch>
"""

from dora.scanner.orchestrator import ScanOrchestrator, ScanStats

__all__ = ["ScanOrchestrator", "ScanStats"]
