# dora/scanner/macho.py
"""Mach-O container detection by magic number."""

from __future__ import annotations

import os
from typing import Union

MACHO_MAGICS = frozenset({
    b"\xfe\xed\xfa\xce",  # MH_MAGIC     32-bit
    b"\xce\xfa\xed\xfe",  # MH_CIGAM     32-bit, swapped
    b"\xfe\xed\xfa\xcf",  # MH_MAGIC_64  64-bit
    b"\xcf\xfa\xed\xfe",  # MH_CIGAM_64  64-bit, swapped
    b"\xca\xfe\xba\xbe",  # FAT_MAGIC    universal binary
})


def is_macho(path: Union[str, os.PathLike]) -> bool:
    """True iff the first four bytes of `path` are a Mach-O magic. Never raises."""
    try:
        with open(path, "rb") as f:
            head = f.read(4)
    except OSError:
        return False
    return head in MACHO_MAGICS
