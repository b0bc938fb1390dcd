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

"""Missing-patch history for cvdsync.

This module implements the persistence layer that remembers which incremental
patches (`<name>-<version>.cdiff`) are permanently unavailable on every
mirror, so that later runs never request them again.

File Format:

One `<name>:<version>` record per line, sorted lexicographically on write so
the file diffs cleanly. On load, surrounding whitespace is trimmed and blank
lines or lines starting with `#` are ignored:

    # patches nobody serves any more
    daily:205
    daily:27034

Key Features:

- Monotonic: entries are only ever added, never removed, by this code
- Synchronous persistence: mark_missing() writes before returning
- Whole-file atomic rewrite: a sibling temporary file is renamed over the
  history, so a failed write leaves the previous history intact

Example:
    Basic usage:
        ```python
        from pathlib import Path
        from cvdsync.state import MissingPatchCache, PatchKey

        cache = MissingPatchCache(Path("/var/www/html/clamav/cdiff_history.txt"))
        cache.load()

        key = PatchKey("daily", 27001)
        if not cache.contains(key):
            ...  # try the mirrors
            cache.mark_missing(key)
        ```

"""

from __future__ import annotations

from collections.abc import Iterator
import os
from pathlib import Path
import tempfile
from typing import NamedTuple

from cvdsync.logging import get_global_logger


class PatchKey(NamedTuple):
    """Identifies one incremental patch: database name and target version."""

    name: str
    version: int

    def __str__(self) -> str:
        return f"{self.name}:{self.version}"

    @classmethod
    def parse(cls, record: str) -> PatchKey:
        """Parse a `name:version` record.

        Args:
            record: Trimmed history line.

        Returns:
            The parsed key.

        Raises:
            ValueError: If the record has no colon, an empty or non-ASCII
                name, or a non-integer version.

        """
        name, sep, version = record.rpartition(":")
        name = name.strip()
        if not sep or not name or not name.isascii():
            raise ValueError(f"not a name:version record: {record!r}")
        return cls(name, int(version.strip()))


class MissingPatchCache:
    """Persistent set of patches known to be unavailable on every mirror.

    The in-memory set is the source of truth for the run; the history file
    is rewritten in full after every new entry.

    Attributes:
        history_file: Path to the history text file.

    """

    def __init__(self, history_file: Path):
        self.history_file = Path(history_file)
        self._keys: set[PatchKey] = set()

    def load(self) -> set[PatchKey]:
        """Load the history file into memory.

        A missing file is an empty history. Unparseable lines, including
        lines with bytes that aren't valid UTF-8, are skipped with a warning. Entries already in memory are kept, so calling load()
        twice never loses a miss recorded in between.

        Returns:
            A copy of the loaded key set.

        Raises:
            OSError: If the file exists but cannot be read.

        """
        logger = get_global_logger()

        if not self.history_file.exists():
            logger.verbose(
                "HISTORY", f"No history file yet, starting empty: {self.history_file}"
            )
            return set(self._keys)

        with open(self.history_file, encoding="utf-8", errors="replace") as f:
            for lineno, raw in enumerate(f, start=1):
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                try:
                    self._keys.add(PatchKey.parse(line))
                except ValueError:
                    logger.warning(
                        "HISTORY",
                        f"Ignoring malformed line {lineno} in {self.history_file}: {line!r}",
                    )

        logger.verbose(
            "HISTORY",
            f"Loaded {len(self._keys)} known-missing patch(es) from {self.history_file}",
        )
        return set(self._keys)

    def contains(self, key: PatchKey) -> bool:
        """Return True if the patch is recorded as unavailable."""
        return key in self._keys

    def mark_missing(self, key: PatchKey) -> None:
        """Record a patch as unavailable and persist the history immediately.

        A failed write is reported as a warning; the key stays in memory so
        the rest of this run still honours it.

        Args:
            key: The patch that no mirror could serve.

        """
        logger = get_global_logger()

        if key in self._keys:
            return
        self._keys.add(key)
        logger.verbose("HISTORY", f"Recording missing patch {key}")

        try:
            self.flush()
        except OSError as err:
            logger.warning(
                "HISTORY", f"Can't write history {self.history_file}: {err}"
            )

    def flush(self) -> None:
        """Rewrite the history file atomically.

        Writes sorted records to a temporary file in the same directory and
        renames it over the history file.

        Raises:
            OSError: If the file cannot be written or renamed.

        """
        records = sorted(str(key) for key in self._keys)

        self.history_file.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.history_file.name}.", dir=self.history_file.parent
        )
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for record in records:
                    f.write(f"{record}\n")
                f.flush()
                os.fsync(f.fileno())
            tmp.replace(self.history_file)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[PatchKey]:
        return iter(sorted(self._keys, key=str))
