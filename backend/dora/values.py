# dora/values.py
"""
Tagged values: plist/JSON values keep their type until they are persisted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ValueKind(Enum):
    STRING = "string"
    BOOL = "bool"
    NUMBER = "number"
    LIST = "list"
    MAP = "map"
    OTHER = "other"


def _compact_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class TaggedValue:
    """
    A heterogeneous entitlement or Mach service value.

    Entitlement values may be booleans, numbers, strings, arrays or
    dictionaries. They are kept typed in memory and only collapsed to a
    single string by render(), which the store calls right before writing.
    """
    kind: ValueKind
    raw: Any

    @classmethod
    def of(cls, raw: Any) -> "TaggedValue":
        # bool first: bool is a subclass of int
        if isinstance(raw, bool):
            return cls(ValueKind.BOOL, raw)
        if isinstance(raw, (int, float)):
            return cls(ValueKind.NUMBER, raw)
        if isinstance(raw, str):
            return cls(ValueKind.STRING, raw)
        if isinstance(raw, (list, tuple)):
            return cls(ValueKind.LIST, list(raw))
        if isinstance(raw, dict):
            return cls(ValueKind.MAP, dict(raw))
        return cls(ValueKind.OTHER, raw)

    def render(self) -> str:
        """
        Canonical string form stored in service_entitlement.value / mach_service.value.

            string  → as-is
            bool    → "true" / "false"
            number  → decimal ("1", "2.5")
            list    → items as compact JSON joined by ", "
            map     → "key: <compact JSON>" pairs sorted by key, joined by ", "
        """
        if self.kind is ValueKind.STRING:
            return self.raw
        if self.kind is ValueKind.BOOL:
            return "true" if self.raw else "false"
        if self.kind is ValueKind.NUMBER:
            return _compact_json(self.raw)
        if self.kind is ValueKind.LIST:
            return ", ".join(_compact_json(v) for v in self.raw)
        if self.kind is ValueKind.MAP:
            return ", ".join(f"{k}: {_compact_json(v)}" for k, v in sorted(self.raw.items()))
        if self.raw is None:
            return ""
        return str(self.raw)
