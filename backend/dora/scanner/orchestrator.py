# dora/scanner/orchestrator.py
"""
Scan Orchestrator — populates one inventory store.

Two sequential phases:

    Phase A — declared descriptors
        For every file in the LaunchAgents / LaunchDaemons directories:
        load descriptor → service row (key = Label) → mach endpoints →
        run all capabilities against the program path → persist.

    Phase B — raw executable sweep
        For every top-level regular file in the sweep directories:
        Mach-O magic check → Identify → service row (key = identifier) →
        run the remaining capabilities → persist.

Failure policy:
    - DescriptorParseError      → log, skip that descriptor
    - Capability failure        → log, that capability contributes nothing
    - Identify failure (sweep)  → log, skip that binary
    - StoreError                → propagates, the run is aborted

Phase A and Phase B resolve identity in different key spaces (launchd label
vs code-signing identifier). A program reachable both ways ends up as one
row when the two keys coincide and as two rows when they differ.

Concurrency:
    Phase B can fan the sniff + capability work out to a bounded thread pool
    (max_workers > 1). All store writes still happen on the calling thread,
    so identity resolution stays single-writer and one file's failure never
    cancels another's.

Usage from populate.py:
    from dora.scanner import ScanOrchestrator

    orchestrator = ScanOrchestrator.from_config(app.config)
    stats = orchestrator.run()
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from dora.models import RUN_AS_ROOT, RUN_AS_STANDARD
from dora.scanner.base import CapabilityResult
from dora.scanner.capabilities import CapabilitySet, build_capabilities
from dora.scanner.descriptor import DescriptorParseError, ServiceDescriptor, load_descriptor
from dora.scanner.macho import is_macho
from dora.store import RelationalStore

logger = logging.getLogger(__name__)

# (directory, run_as_user) — agent-class descriptors run as the logged-in
# user, daemon-class descriptors run as root
DESCRIPTOR_DIRECTORIES: Tuple[Tuple[str, str], ...] = (
    ("/System/Library/LaunchAgents", RUN_AS_STANDARD),
    ("/System/Library/LaunchDaemons", RUN_AS_ROOT),
)

SWEEP_DIRECTORIES: Tuple[str, ...] = (
    "/System/Library/PrivateFrameworks",
    "/usr/bin",
    "/sbin",
    "/usr/sbin",
)


@dataclass
class ScanStats:
    descriptors_loaded: int = 0
    descriptors_failed: int = 0
    binaries_examined: int = 0
    binaries_identified: int = 0
    binaries_skipped: int = 0
    capability_failures: int = 0
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    service_ids: Set[int] = field(default_factory=set)

    @property
    def services_recorded(self) -> int:
        """Distinct service rows written or reused during the run."""
        return len(self.service_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "descriptors_loaded": self.descriptors_loaded,
            "descriptors_failed": self.descriptors_failed,
            "binaries_examined": self.binaries_examined,
            "binaries_identified": self.binaries_identified,
            "binaries_skipped": self.binaries_skipped,
            "capability_failures": self.capability_failures,
            "services_recorded": self.services_recorded,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class BinaryReport:
    """Everything the capabilities found out about one binary, before it is persisted."""
    binary_path: str
    identify: Optional[CapabilityResult] = None
    entitlements: Optional[CapabilityResult] = None
    dependencies: Optional[CapabilityResult] = None
    symbols: Optional[CapabilityResult] = None

    def results(self) -> List[CapabilityResult]:
        return [
            r for r in (self.identify, self.entitlements, self.dependencies, self.symbols)
            if r is not None
        ]


def _list_files(directory: str) -> Iterator[str]:
    """Top-level regular files of `directory`, sorted by name. Missing directories yield nothing."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning("Cannot read directory %s: %s", directory, e)
        return

    for entry in entries:
        try:
            if entry.is_file():
                yield entry.path
        except OSError as e:
            logger.warning("Cannot stat %s: %s", entry.path, e)


class ScanOrchestrator:
    """
    Runs both scan phases against one RelationalStore.

    Every collaborator is injectable: tests pass fake capabilities and
    temporary directories, production uses the defaults.
    """

    def __init__(
        self,
        store: Optional[RelationalStore] = None,
        capabilities: Optional[CapabilitySet] = None,
        descriptor_directories: Sequence[Tuple[str, str]] = DESCRIPTOR_DIRECTORIES,
        sweep_directories: Sequence[str] = SWEEP_DIRECTORIES,
        max_workers: int = 1,
    ):
        self.store = store or RelationalStore()
        self.capabilities = capabilities or build_capabilities()
        self.descriptor_directories = list(descriptor_directories)
        self.sweep_directories = list(sweep_directories)
        self.max_workers = max(1, int(max_workers or 1))

    @classmethod
    def from_config(cls, config: Mapping[str, Any], store: Optional[RelationalStore] = None) -> "ScanOrchestrator":
        capabilities = build_capabilities(
            arch=config.get("DORA_SYMBOL_ARCH", "arm64e"),
            timeout=float(config.get("DORA_CAPABILITY_TIMEOUT", 30)),
        )
        return cls(
            store=store,
            capabilities=capabilities,
            max_workers=int(config.get("DORA_SCAN_WORKERS", 1)),
        )

    def run(self) -> ScanStats:
        stats = ScanStats()
        start = time.monotonic()

        logger.info(
            "Scan started: %d descriptor directories, %d sweep directories, workers=%d",
            len(self.descriptor_directories), len(self.sweep_directories), self.max_workers,
        )

        self.scan_descriptors(stats)
        self.sweep_binaries(stats)

        stats.duration_seconds = round(time.monotonic() - start, 2)
        logger.info("Scan finished in %.2fs: %s", stats.duration_seconds, stats.to_dict())
        return stats

    # ── Phase A ─────────────────────────────────────────────────────

    def scan_descriptors(self, stats: ScanStats):
        for directory, run_as_user in self.descriptor_directories:
            logger.info("Phase A: scanning descriptors in %s (%s)", directory, run_as_user)
            for descriptor_path in _list_files(directory):
                self.process_descriptor(descriptor_path, run_as_user, stats)

    def process_descriptor(self, descriptor_path: str, run_as_user: str, stats: ScanStats):
        logger.debug("Processing descriptor %s", descriptor_path)
        try:
            descriptor = load_descriptor(descriptor_path, run_as_user=run_as_user)
        except DescriptorParseError as e:
            logger.warning("Skipping descriptor: %s", e)
            stats.descriptors_failed += 1
            stats.errors.append(str(e))
            return

        stats.descriptors_loaded += 1
        service_id = self._save_descriptor_service(descriptor)
        stats.service_ids.add(service_id)
        self.store.save_mach_endpoints(service_id, descriptor.mach_services)

        if descriptor.program:
            report = self.inspect_binary(descriptor.program)
            if report.identify is not None and report.identify.success:
                logger.debug("%s is signed as %s", descriptor.program, report.identify.data)
            self._persist_report(service_id, report, stats)
        else:
            logger.debug("Descriptor %s declares no program", descriptor_path)

        self.store.commit()

    def _save_descriptor_service(self, descriptor: ServiceDescriptor) -> int:
        return self.store.save_service(
            label=descriptor.label,
            path=descriptor.program,
            run_as_user=descriptor.run_as_user,
            run_at_load=descriptor.run_at_load,
            keep_alive=descriptor.keep_alive,
            descriptor_path=descriptor.descriptor_path,
        )

    # ── Phase B ─────────────────────────────────────────────────────

    def sweep_binaries(self, stats: ScanStats):
        candidates: List[str] = []
        for directory in self.sweep_directories:
            logger.info("Phase B: sweeping %s", directory)
            candidates.extend(_list_files(directory))

        if self.max_workers == 1:
            for binary_path in candidates:
                self._store_sweep_report(self._sweep_one(binary_path), stats)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_path = {
                executor.submit(self._sweep_one, binary_path): binary_path
                for binary_path in candidates
            }
            for future in as_completed(future_to_path):
                binary_path = future_to_path[future]
                try:
                    report = future.result()
                except Exception as e:
                    logger.error("Sweep of %s failed: %s", binary_path, e, exc_info=True)
                    stats.binaries_skipped += 1
                    stats.errors.append(f"{binary_path}: {e}")
                    continue
                # Writes stay on this thread
                self._store_sweep_report(report, stats)

    def _sweep_one(self, binary_path: str) -> Optional[BinaryReport]:
        """Sniff and inspect one file. Returns None for non-Mach-O files. Touches no store."""
        if not is_macho(binary_path):
            return None
        return self.inspect_binary(binary_path, require_identity=True)

    def _store_sweep_report(self, report: Optional[BinaryReport], stats: ScanStats):
        if report is None:
            return

        stats.binaries_examined += 1
        identify = report.identify
        if identify is None or not identify.success:
            reason = "; ".join(identify.errors) if identify else "identify did not run"
            logger.warning("Skipping %s: no code identity (%s)", report.binary_path, reason)
            stats.binaries_skipped += 1
            return

        stats.binaries_identified += 1
        service_id = self.store.save_service(label=identify.data, path=report.binary_path)
        stats.service_ids.add(service_id)
        self._persist_report(service_id, report, stats)
        self.store.commit()

    # ── Shared ──────────────────────────────────────────────────────

    def inspect_binary(self, binary_path: str, require_identity: bool = False) -> BinaryReport:
        """
        Run all four capabilities against one binary.

        With require_identity (the sweep), a failed Identify means the binary
        will be skipped, so the other three are not run at all.
        """
        report = BinaryReport(binary_path=binary_path)
        report.identify = self.capabilities.identify.run(binary_path)
        if require_identity and not report.identify.success:
            return report

        report.entitlements = self.capabilities.entitlements.run(binary_path)
        report.dependencies = self.capabilities.dependencies.run(binary_path)
        report.symbols = self.capabilities.symbols.run(binary_path)
        return report

    def _persist_report(self, service_id: int, report: BinaryReport, stats: ScanStats):
        if report.entitlements is not None and report.entitlements.success:
            self.store.save_entitlements(service_id, report.entitlements.data or {})
        if report.dependencies is not None and report.dependencies.success:
            if not report.dependencies.data:
                logger.debug("No external dependencies found for %s", report.binary_path)
            self.store.save_dependencies(service_id, report.dependencies.data or [])
        if report.symbols is not None and report.symbols.success:
            if not report.symbols.data:
                logger.debug("No imported symbols found for %s", report.binary_path)
            self.store.save_symbols(service_id, report.symbols.data or [])

        stats.capability_failures += sum(1 for r in report.results() if not r.success)
