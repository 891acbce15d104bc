# dora/scanner/capabilities/identify.py
"""
Code-signing identity capability.

Runs `codesign -dv <binary>` and reads the signing identifier from the
diagnostic output, which codesign writes to stderr:

    Executable=/usr/libexec/foo
    Identifier=com.apple.foo
    Format=Mach-O universal (x86_64 arm64e)
    ...

Output data: the identifier string, or "Unknown" when the signature has no
Identifier= line. An unsigned binary makes codesign exit non-zero, which is
a capability failure.
"""

from __future__ import annotations

from dora.scanner.base import BaseCapability

UNKNOWN_IDENTIFIER = "Unknown"


def parse_identifier(diagnostics: str) -> str:
    for line in diagnostics.splitlines():
        if line.startswith("Identifier="):
            identifier = line.split("=", 1)[1].strip()
            return identifier or UNKNOWN_IDENTIFIER
    return UNKNOWN_IDENTIFIER


class IdentifyCapability(BaseCapability):

    @property
    def name(self) -> str:
        return "identify"

    def execute(self, binary_path: str) -> str:
        output = self._invoke(["codesign", "-dv", binary_path])
        # codesign prints the signature summary on stderr; check stdout too
        # in case a wrapper redirected it
        return parse_identifier(output.stderr_text + "\n" + output.stdout_text)
