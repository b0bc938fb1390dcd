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

"""Validated commit of staged full-file downloads.

A staged candidate replaces the live database only when:

1. the staged file exists,
2. it is not empty, and
3. the live file does not exist, or the staged file's mtime is strictly
   greater than the live file's.

The move is an os.replace() within the database directory, so readers see
either the old file or the new one. A rejected candidate is deleted and the
live file is left exactly as it was.

Example:
    ```python
    from cvdsync.staging import StagedReplacer

    if StagedReplacer().commit(Path("temp/main.cvd"), Path("main.cvd")):
        print("main.cvd updated")
    ```
"""

from __future__ import annotations

from pathlib import Path

from cvdsync.logging import get_global_logger


class StagedReplacer:
    """Commit staged files over live files when they are valid and newer."""

    def commit(self, staged_path: Path, live_path: Path) -> bool:
        """Move staged_path over live_path if it passes the checks.

        Args:
            staged_path: Downloaded candidate in the staging directory.
            live_path: Database file currently in use.

        Returns:
            True if live_path now holds the staged content, False otherwise.
            The staged file never survives this call.

        """
        logger = get_global_logger()
        staged_path = Path(staged_path)
        live_path = Path(live_path)

        try:
            staged = staged_path.stat()
        except FileNotFoundError:
            logger.warning("STAGE", f"{staged_path} does not exist, nothing to commit")
            return False
        except OSError as err:
            logger.warning("STAGE", f"Can't stat {staged_path}: {err}")
            self._discard(staged_path)
            return False

        if staged.st_size == 0:
            logger.warning("STAGE", f"{staged_path} is empty, not copying back!")
            self._discard(staged_path)
            return False

        try:
            live = live_path.stat()
        except FileNotFoundError:
            live = None
        except OSError as err:
            logger.warning("STAGE", f"Can't stat {live_path}: {err}")
            self._discard(staged_path)
            return False

        if live is not None and staged.st_mtime_ns <= live.st_mtime_ns:
            logger.verbose(
                "STAGE", f"{staged_path} is not newer than {live_path}, keeping current"
            )
            self._discard(staged_path)
            return False

        try:
            staged_path.replace(live_path)
        except OSError as err:
            logger.warning("STAGE", f"Move {staged_path} -> {live_path} failed: {err}")
            self._discard(staged_path)
            return False

        logger.verbose("STAGE", f"Committed {staged_path} -> {live_path}")
        return True

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as err:
            get_global_logger().warning("STAGE", f"Can't remove {path}: {err}")
