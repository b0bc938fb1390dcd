# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Installed-version probing for cvdsync.

A probe answers one question: which version is the database file at this
path? Probes never raise. When the answer is unknown (tool missing, tool
failed, output unparseable, file absent) they return UNKNOWN_VERSION, and
the reconciler falls back to a full download.

Backends:

1. sigtool (ships with ClamAV): `sigtool -i <file>` prints a
   `Version: <n>` line for .cvd/.cld files.

Tests and embedders can pass any object with a `probe(path) -> int` method.

Example:
    ```python
    from pathlib import Path
    from cvdsync.versioning.probe import SigtoolProbe

    version = SigtoolProbe().probe(Path("/var/www/html/clamav/daily.cvd"))
    if version <= 0:
        print("unknown, full download needed")
    ```
"""

from __future__ import annotations

from pathlib import Path
import re
import shutil
import subprocess
from typing import Protocol

from cvdsync.logging import get_global_logger

UNKNOWN_VERSION = -1

_VERSION_LINE = re.compile(r"^Version:\s*(\d+)")


class VersionProbe(Protocol):
    """Protocol for local version probes."""

    def probe(self, path: Path) -> int:
        """Return the installed version, or a value <= 0 if unknown."""
        ...


class SigtoolProbe:
    """Read the version of a database file with `sigtool -i`."""

    def __init__(self, command: str = "sigtool", timeout: float = 30) -> None:
        self.command = command
        self.timeout = timeout

    def probe(self, path: Path) -> int:
        logger = get_global_logger()
        path = Path(path)

        if not path.exists():
            return UNKNOWN_VERSION

        exe = shutil.which(self.command)
        if not exe:
            logger.warning("PROBE", f"{self.command} not found on PATH")
            return UNKNOWN_VERSION

        logger.debug("PROBE", f"Running: {exe} -i {path}")
        try:
            result = subprocess.run(
                [exe, "-i", str(path)],
                check=False,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("PROBE", f"{self.command} timed out on {path}")
            return UNKNOWN_VERSION
        except OSError as err:
            logger.warning("PROBE", f"Can't run {self.command}: {err}")
            return UNKNOWN_VERSION

        for line in result.stdout.splitlines():
            match = _VERSION_LINE.match(line.strip())
            if match:
                version = int(match.group(1))
                logger.debug("PROBE", f"{path.name} is version {version}")
                return version

        logger.verbose(
            "PROBE",
            f"No version in {self.command} output for {path} (exit {result.returncode})",
        )
        return UNKNOWN_VERSION
