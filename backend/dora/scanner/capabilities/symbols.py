# dora/scanner/capabilities/symbols.py
"""
Imported symbol capability.

Runs `nm -u --arch=<arch> <binary>`, which prints one undefined (imported)
symbol per line:

    _CFRelease
    _xpc_connection_create_mach_service
    _objc_msgSend

Universal binaries carry several slices, so the architecture is a
constructor parameter (arm64e by default, DORA_SYMBOL_ARCH in config).

Output data: list of symbol names, possibly empty.
"""

from __future__ import annotations

from typing import List, Optional

from dora.scanner.base import BaseCapability, CommandRunner

DEFAULT_ARCH = "arm64e"


def parse_symbols(listing: str) -> List[str]:
    return [line.strip() for line in listing.splitlines() if line.strip()]


class ImportedSymbolsCapability(BaseCapability):

    def __init__(self, runner: Optional[CommandRunner] = None, arch: str = DEFAULT_ARCH):
        super().__init__(runner)
        self.arch = arch or DEFAULT_ARCH

    @property
    def name(self) -> str:
        return "symbols"

    def execute(self, binary_path: str) -> List[str]:
        output = self._invoke(["nm", "-u", f"--arch={self.arch}", binary_path])
        return parse_symbols(output.stdout_text)
