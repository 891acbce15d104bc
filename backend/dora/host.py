# dora/host.py
"""
Host identity and store file naming.

One store per OS build, named after what sw_vers reports:

    dora_macOS_14.4.1_23E224.sqlite
"""

from __future__ import annotations

import glob
import logging
import os
from typing import List, Optional

from dora.scanner.base import CapabilityExecutionError, CommandRunner

logger = logging.getLogger(__name__)

STORE_PREFIX = "dora_"
STORE_SUFFIX = ".sqlite"


def _sw_vers(runner: CommandRunner, flag: str) -> str:
    output = runner.run(["sw_vers", flag])
    if output.returncode != 0:
        raise CapabilityExecutionError(
            f"sw_vers {flag} exited with code {output.returncode}: {output.stderr_text.strip()}"
        )
    value = output.stdout_text.strip()
    if not value:
        raise CapabilityExecutionError(f"sw_vers {flag} printed nothing")
    return value


def store_filename(runner: Optional[CommandRunner] = None) -> str:
    """dora_<productName>_<productVersion>_<buildVersion>.sqlite for this host."""
    runner = runner or CommandRunner()
    parts = [
        _sw_vers(runner, flag).replace(" ", "")
        for flag in ("-productName", "-productVersion", "-buildVersion")
    ]
    filename = STORE_PREFIX + "_".join(parts) + STORE_SUFFIX
    logger.debug("Host store filename: %s", filename)
    return filename


def is_valid_store_name(name: str) -> bool:
    if not name or "/" in name:
        return False
    return name.startswith(STORE_PREFIX) and name.endswith(STORE_SUFFIX)


def list_stores(directory: str = ".") -> List[str]:
    """Store files (dora_*.sqlite) in `directory`, sorted by name."""
    return sorted(
        os.path.basename(path)
        for path in glob.glob(os.path.join(directory, f"{STORE_PREFIX}*{STORE_SUFFIX}"))
        if os.path.isfile(path) and is_valid_store_name(os.path.basename(path))
    )
