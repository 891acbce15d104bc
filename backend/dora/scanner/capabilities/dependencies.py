# dora/scanner/capabilities/dependencies.py
"""
Linked library capability.

Runs `otool -L <binary>`:

    /usr/libexec/foo:
            /usr/lib/libSystem.B.dylib (compatibility version 1.0.0, current version 1336.0.0)
            /System/Library/Frameworks/Foundation.framework/Versions/C/Foundation (...)

The first line names the binary itself and is discarded. Every other
non-empty line contributes its first token, the load path.

Output data: list of library paths, possibly empty.
"""

from __future__ import annotations

from typing import List

from dora.scanner.base import BaseCapability


def parse_load_paths(listing: str) -> List[str]:
    paths: List[str] = []
    for line in listing.splitlines()[1:]:
        tokens = line.split()
        if tokens:
            paths.append(tokens[0])
    return paths


class DependenciesCapability(BaseCapability):

    @property
    def name(self) -> str:
        return "dependencies"

    def execute(self, binary_path: str) -> List[str]:
        output = self._invoke(["otool", "-L", binary_path])
        return parse_load_paths(output.stdout_text)
