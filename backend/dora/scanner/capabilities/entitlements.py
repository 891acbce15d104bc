# dora/scanner/capabilities/entitlements.py
"""
Code-signing entitlements capability.

Two-stage extraction, equivalent to:

    codesign -d --entitlements :- <binary> | plutil -convert json -o - -

Stage 1 dumps the embedded entitlements plist to stdout. A signed binary
without entitlements produces no output at all — that is "no entitlements",
not an error, and stage 2 is skipped.

Stage 2 converts the plist to JSON so the values keep their types
(bool, number, string, array, dict).

Output data structure:
    {
        "com.apple.private.tcc.allow": TaggedValue(LIST, ["kTCCServiceCamera"]),
        "com.apple.security.app-sandbox": TaggedValue(BOOL, True),
    }
"""

from __future__ import annotations

import json
from typing import Dict

from dora.scanner.base import BaseCapability, CapabilityExecutionError
from dora.values import TaggedValue


def parse_entitlements_json(raw: bytes) -> Dict[str, TaggedValue]:
    """Decode plutil's JSON output into tagged entitlement values."""
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CapabilityExecutionError(f"Malformed entitlements JSON: {e}") from e

    if not isinstance(document, dict):
        raise CapabilityExecutionError(
            f"Entitlements document is a {type(document).__name__}, expected a dictionary"
        )

    return {str(key): TaggedValue.of(value) for key, value in document.items()}


class EntitlementsCapability(BaseCapability):

    @property
    def name(self) -> str:
        return "entitlements"

    def execute(self, binary_path: str) -> Dict[str, TaggedValue]:
        signed = self._invoke(["codesign", "-d", "--entitlements", ":-", binary_path])

        if not signed.stdout.strip():
            return {}

        converted = self._invoke(
            ["plutil", "-convert", "json", "-o", "-", "-"],
            input_bytes=signed.stdout,
        )
        return parse_entitlements_json(converted.stdout)
