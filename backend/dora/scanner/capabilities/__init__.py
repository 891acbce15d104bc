# dora/scanner/capabilities/__init__.py
"""
Introspection capabilities.
Each capability wraps one external tool and parses its output.
Capabilities do NOT write to the store — they only gather facts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from dora.scanner.base import DEFAULT_TIMEOUT, BaseCapability, CommandRunner
from dora.scanner.capabilities.identify import IdentifyCapability
from dora.scanner.capabilities.entitlements import EntitlementsCapability
from dora.scanner.capabilities.dependencies import DependenciesCapability
from dora.scanner.capabilities.symbols import DEFAULT_ARCH, ImportedSymbolsCapability


@dataclass
class CapabilitySet:
    """The four capabilities the orchestrator runs against every binary."""
    identify: BaseCapability
    entitlements: BaseCapability
    dependencies: BaseCapability
    symbols: BaseCapability

    def all(self) -> List[BaseCapability]:
        return [self.identify, self.entitlements, self.dependencies, self.symbols]


def build_capabilities(
    runner: Optional[CommandRunner] = None,
    arch: str = DEFAULT_ARCH,
    timeout: float = DEFAULT_TIMEOUT,
) -> CapabilitySet:
    """Default capability set sharing one command runner."""
    runner = runner or CommandRunner(timeout=timeout)
    return CapabilitySet(
        identify=IdentifyCapability(runner),
        entitlements=EntitlementsCapability(runner),
        dependencies=DependenciesCapability(runner),
        symbols=ImportedSymbolsCapability(runner, arch=arch),
    )


__all__ = [
    "IdentifyCapability", "EntitlementsCapability", "DependenciesCapability",
    "ImportedSymbolsCapability", "CapabilitySet", "build_capabilities",
]
