# dora/scanner/descriptor.py
"""
launchd service descriptor loading.

A descriptor is a property list (XML or binary) such as:

    <dict>
        <key>Label</key>             <string>com.example.foo</string>
        <key>Program</key>           <string>/usr/bin/foo</string>
        <key>RunAtLoad</key>         <true/>
        <key>MachServices</key>
        <dict>
            <key>com.example.mach</key> <true/>
        </dict>
    </dict>

Only the fields the inventory needs are extracted. Anything else in the
document is ignored.
"""

from __future__ import annotations

import os
import plistlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
from xml.parsers.expat import ExpatError

from dora.values import TaggedValue


class DescriptorParseError(Exception):
    """The descriptor could not be opened or is not a valid property list dictionary."""


@dataclass
class ServiceDescriptor:
    descriptor_path: str
    label: str = ""
    program: str = ""
    run_at_load: bool = False
    keep_alive: bool = False
    run_as_user: Optional[str] = None    # root / standard, from the directory class
    mach_services: Dict[str, TaggedValue] = field(default_factory=dict)


def _bool_field(document: Dict[str, Any], key: str) -> bool:
    value = document.get(key)
    return value if isinstance(value, bool) else False


def resolve_program(document: Dict[str, Any]) -> str:
    """Program if non-empty, else ProgramArguments[0], else ""."""
    program = document.get("Program")
    if isinstance(program, str) and program:
        return program

    arguments = document.get("ProgramArguments")
    if isinstance(arguments, list) and arguments and isinstance(arguments[0], str):
        return arguments[0]

    return ""


def parse_descriptor(document: Any, descriptor_path: str, run_as_user: Optional[str] = None) -> ServiceDescriptor:
    if not isinstance(document, dict):
        raise DescriptorParseError(
            f"{descriptor_path}: top-level value is a {type(document).__name__}, expected a dictionary"
        )

    label = document.get("Label")
    mach_services = document.get("MachServices")

    return ServiceDescriptor(
        descriptor_path=descriptor_path,
        label=label if isinstance(label, str) else "",
        program=resolve_program(document),
        run_at_load=_bool_field(document, "RunAtLoad"),
        keep_alive=_bool_field(document, "KeepAlive"),
        run_as_user=run_as_user,
        mach_services={
            str(name): TaggedValue.of(value)
            for name, value in (mach_services.items() if isinstance(mach_services, dict) else ())
        },
    )


def load_descriptor(path: Union[str, os.PathLike], run_as_user: Optional[str] = None) -> ServiceDescriptor:
    """Parse one descriptor file. Raises DescriptorParseError on any read or format problem."""
    descriptor_path = os.fspath(path)
    try:
        with open(descriptor_path, "rb") as f:
            document = plistlib.load(f)
    except OSError as e:
        raise DescriptorParseError(f"{descriptor_path}: cannot read descriptor: {e}") from e
    except (plistlib.InvalidFileException, ValueError, ExpatError, OverflowError) as e:
        raise DescriptorParseError(f"{descriptor_path}: invalid property list: {e}") from e

    return parse_descriptor(document, descriptor_path, run_as_user)
