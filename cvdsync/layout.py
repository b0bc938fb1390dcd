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

"""Database directory layout and the Resource type.

Everything lives under one base directory:

    <database_dir>/
        main.cvd                full files, <name>.<full_extension>
        daily-27001.cdiff       patches, <name>-<version>.<patch_extension>
        temp/                   staging area for full-file downloads
        cdiff_history.txt       missing-patch history
        dns.txt                 last version record, for reference

The staging directory sits inside the base directory so that committing a
staged file is a same-filesystem rename.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cvdsync.state import PatchKey


@dataclass(frozen=True)
class StorageLayout:
    """File naming rules for one database directory.

    Attributes:
        base_dir: Directory holding full files and patches.
        full_extension: Extension of full files (without dot).
        patch_extension: Extension of patch files (without dot).
        temp_dir_name: Name of the staging subdirectory.
        history_name: File name of the missing-patch history.
        record_name: File name the raw version record is saved under.

    """

    base_dir: Path
    full_extension: str = "cvd"
    patch_extension: str = "cdiff"
    temp_dir_name: str = "temp"
    history_name: str = "cdiff_history.txt"
    record_name: str = "dns.txt"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> StorageLayout:
        """Build a layout from a loaded configuration dict."""
        return cls(
            base_dir=Path(config["database_dir"]),
            full_extension=config["full_extension"],
            patch_extension=config["patch_extension"],
            temp_dir_name=config["temp_dir"],
            history_name=config["history_file"],
            record_name=config["record_file"],
        )

    @property
    def temp_dir(self) -> Path:
        return self.base_dir / self.temp_dir_name

    @property
    def history_path(self) -> Path:
        return self.base_dir / self.history_name

    @property
    def record_path(self) -> Path:
        return self.base_dir / self.record_name

    def full_name(self, name: str) -> str:
        """Remote and local file name of a full file, e.g. `main.cvd`."""
        return f"{name}.{self.full_extension}"

    def patch_name(self, key: PatchKey) -> str:
        """Remote and local file name of a patch, e.g. `daily-27001.cdiff`."""
        return f"{key.name}-{key.version}.{self.patch_extension}"

    def full_path(self, name: str) -> Path:
        return self.base_dir / self.full_name(name)

    def patch_path(self, key: PatchKey) -> Path:
        return self.base_dir / self.patch_name(key)

    def staging_path(self, name: str) -> Path:
        return self.temp_dir / self.full_name(name)

    def ensure_dirs(self) -> None:
        """Create the base and staging directories if needed."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class Resource:
    """One tracked database, as seen at the start of a reconciliation pass.

    Attributes:
        name: Database name (identity), e.g. "daily".
        local_path: Path of the live full file.
        local_version: Installed version. None when no local file exists;
            zero or negative when the probe could not determine it.
        target_version: Current version published upstream.
        fast_moving: True for databases whose next patch is prefetched.

    """

    name: str
    local_path: Path
    local_version: int | None
    target_version: int
    fast_moving: bool = False

    def patch_key(self, version: int) -> PatchKey:
        return PatchKey(self.name, version)
