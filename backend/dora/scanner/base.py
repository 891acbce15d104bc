# dora/scanner/base.py
"""
Base classes for the service introspection pipeline.

Architecture:
    ScanOrchestrator drives:  Descriptors / Mach-O sweep → Capabilities → RelationalStore

BaseCapability: Wraps exactly one external tool (codesign, plutil, otool, nm)
                and a parser for that tool's output. Capabilities NEVER touch
                the store — they only gather facts about one binary.

CommandRunner:  The only place a subprocess is spawned. Every invocation is
                bounded by a timeout. Tests swap it for a fake runner so no
                capability ever needs the real macOS toolchain.

This separation means:
  - Each capability can fail independently without crashing the whole scan
  - A capability that hangs is killed by the timeout and reported as a failure
  - The orchestrator decides what gets persisted; capabilities only report
"""

from __future__ import annotations

import logging
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class CapabilityExecutionError(Exception):
    """External tool missing, timed out, exited non-zero or produced unparseable output."""


# ---------------------------------------------------------------------------
# Subprocess boundary
# ---------------------------------------------------------------------------

@dataclass
class CommandOutput:
    argv: List[str]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


class CommandRunner:
    """
    Runs one external command to completion with a timeout.

    Raises CapabilityExecutionError when the tool is missing, cannot be
    spawned or exceeds the timeout. A non-zero exit status is NOT raised
    here — callers decide whether it is fatal.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def run(self, argv: Sequence[str], input_bytes: Optional[bytes] = None) -> CommandOutput:
        argv = list(argv)
        try:
            proc = subprocess.run(
                argv,
                input=input_bytes,
                capture_output=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CapabilityExecutionError(
                f"{argv[0]} timed out after {self.timeout}s"
            ) from e
        except OSError as e:
            raise CapabilityExecutionError(f"{argv[0]} could not be run: {e}") from e

        return CommandOutput(
            argv=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or b"",
            stderr=proc.stderr or b"",
        )


# ---------------------------------------------------------------------------
# Capability results
# ---------------------------------------------------------------------------

@dataclass
class CapabilityResult:
    """
    Standardized output from any capability run.

    Fields:
        capability_name:  "identify", "entitlements", "dependencies", "symbols"
        binary_path:      The binary the capability ran against
        success:          False when the capability failed; data is then None
        data:             Parsed output — str, Dict[str, TaggedValue] or List[str]
        errors:           Failure messages (empty on success)
        duration_seconds: Wall-clock time the capability took
    """
    capability_name: str
    binary_path: str
    success: bool = True
    data: Any = None
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def add_error(self, msg: str):
        self.errors.append(msg)


class BaseCapability(ABC):
    """
    Abstract base for introspection capabilities.

    To create a new capability:
        1. Subclass BaseCapability
        2. Set the `name` property
        3. Implement `execute(binary_path)` returning the parsed data
        4. Use `self._invoke(argv)` for tool calls so timeouts and
           non-zero exits are handled uniformly

    The base class handles automatically:
        - Timing (duration_seconds is set automatically)
        - Error catching (failures become CapabilityResult with success=False)
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique capability identifier."""
        ...

    def run(self, binary_path: str) -> CapabilityResult:
        """
        Execute the capability with automatic timing and error handling.

        DO NOT OVERRIDE THIS METHOD. Override `execute()` instead.

        Returns CapabilityResult — always, even on failure.
        """
        result = CapabilityResult(capability_name=self.name, binary_path=binary_path)
        start = time.monotonic()

        try:
            result.data = self.execute(binary_path)
        except CapabilityExecutionError as e:
            logger.warning("Capability '%s' failed for %s: %s", self.name, binary_path, e)
            result.success = False
            result.add_error(str(e))
        except Exception as e:
            logger.exception("Capability '%s' crashed for %s", self.name, binary_path)
            result.success = False
            result.add_error(f"{type(e).__name__}: {e}")
        finally:
            result.duration_seconds = round(time.monotonic() - start, 2)

        return result

    @abstractmethod
    def execute(self, binary_path: str) -> Any:
        """Perform the tool call(s) and parse the output. Raise CapabilityExecutionError on failure."""
        ...

    def _invoke(self, argv: Sequence[str], input_bytes: Optional[bytes] = None) -> CommandOutput:
        output = self.runner.run(argv, input_bytes=input_bytes)
        if output.returncode != 0:
            stderr = output.stderr_text.strip()[:500]
            raise CapabilityExecutionError(
                f"{argv[0]} exited with code {output.returncode}: {stderr}"
            )
        return output
