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

"""Per-database reconciliation for cvdsync.

The reconciler brings one database in line with its published version. No
state machine is persisted: the state is derived on every pass from the
filesystem, the probed local version and the missing-patch history.

States:

- **ABSENT**: no local file. Download the full file and commit it if it is
  not empty.
- **ZERO_SIZE**: local file is empty. Same as absent; the empty file is
  removed first so the freshness check has nothing to compare against.
- **UP_TO_DATE**: local version equals the published one. Nothing to do.
- **BEHIND**: 0 < local < published. Fetch every patch in
  (local, published]. If any patch is unavailable, delete the whole range
  and fall back to a full download.
- **VERSION_UNKNOWN**: local file present but its version can't be read.
  Full download; the patch math can't be trusted.
- **AHEAD**: local > published (stale record). Full conditional download;
  the commit rule keeps the local file unless the mirror has something newer.

Incremental catch-up scans the whole range even after the first missing
patch so that every miss in the range is recorded in one pass.

Full downloads go to the staging directory, using the live file's mtime as
the If-Modified-Since hint, and are committed through StagedReplacer.

Example:
    ```python
    reconciler = UpdateReconciler(layout, fetcher, cache)
    result = reconciler.reconcile(resource)
    print(result.action)  # "patched", "replaced", ...
    ```
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from cvdsync.io import DownloadOutcome, MirrorFetcher
from cvdsync.layout import Resource, StorageLayout
from cvdsync.logging import get_global_logger
from cvdsync.results import Action, ReconcileResult
from cvdsync.staging import StagedReplacer
from cvdsync.state import MissingPatchCache


class ResourceState(Enum):
    ABSENT = "absent"
    ZERO_SIZE = "zero_size"
    UP_TO_DATE = "up_to_date"
    BEHIND = "behind"
    VERSION_UNKNOWN = "version_unknown"
    AHEAD = "ahead"


def classify(resource: Resource) -> ResourceState:
    """Derive the reconciliation state of a database from disk and versions."""
    try:
        size = resource.local_path.stat().st_size
    except FileNotFoundError:
        return ResourceState.ABSENT

    if size == 0:
        return ResourceState.ZERO_SIZE

    local = resource.local_version
    if local is None or local <= 0:
        return ResourceState.VERSION_UNKNOWN
    if local == resource.target_version:
        return ResourceState.UP_TO_DATE
    if local < resource.target_version:
        return ResourceState.BEHIND
    return ResourceState.AHEAD


class UpdateReconciler:
    """Decide between patches and full downloads, and carry it out.

    Attributes:
        layout: Naming rules for the database directory.
        fetcher: Mirror fetcher used for every network request.
        cache: Missing-patch history, consulted before every patch request.
        replacer: Commits staged full files.

    """

    def __init__(
        self,
        layout: StorageLayout,
        fetcher: MirrorFetcher,
        cache: MissingPatchCache,
        replacer: StagedReplacer | None = None,
    ) -> None:
        self.layout = layout
        self.fetcher = fetcher
        self.cache = cache
        self.replacer = replacer or StagedReplacer()

    def reconcile(self, resource: Resource) -> ReconcileResult:
        """Reconcile one database. Never raises.

        Args:
            resource: The database with freshly probed local version.

        Returns:
            ReconcileResult describing the state found and the action taken.
            Unexpected errors are logged and reported as action "failed".

        """
        logger = get_global_logger()
        state = ResourceState.ABSENT
        try:
            state = classify(resource)
            logger.verbose(
                "SYNC",
                f"{resource.name}: state={state.value} "
                f"local={resource.local_version} current={resource.target_version}",
            )
            return self._reconcile(resource, state)
        except Exception as err:
            logger.warning("SYNC", f"Update of {resource.name} failed: {err}")
            return ReconcileResult(
                name=resource.name,
                state=state.value,
                action="failed",
                local_version=resource.local_version,
                target_version=resource.target_version,
                error=str(err),
            )

    def _reconcile(self, resource: Resource, state: ResourceState) -> ReconcileResult:
        logger = get_global_logger()
        missing: list[int] = []

        if state is ResourceState.UP_TO_DATE:
            action: Action = "up_to_date"
        elif state is ResourceState.ABSENT:
            logger.verbose(
                "SYNC", f"{resource.local_path.name} does not exist, downloading full version"
            )
            action = self._replace_full(resource, conditional=False)
        elif state is ResourceState.ZERO_SIZE:
            logger.warning(
                "SYNC", f"{resource.local_path.name} is zero-sized, downloading full version"
            )
            self._remove(resource.local_path)
            action = self._replace_full(resource, conditional=False)
        elif state is ResourceState.BEHIND:
            missing = self._catch_up(resource)
            if missing:
                logger.verbose(
                    "SYNC",
                    f"Incremental update not possible for {resource.name} "
                    f"(missing: {' '.join(map(str, missing))}), falling back to full file",
                )
                self._remove_patches(resource)
                action = self._replace_full(resource, conditional=True)
            else:
                action = "patched"
        else:
            action = self._replace_full(resource, conditional=True)

        return ReconcileResult(
            name=resource.name,
            state=state.value,
            action=action,
            local_version=resource.local_version,
            target_version=resource.target_version,
            missing_patches=tuple(missing),
        )

    def _patch_range(self, resource: Resource) -> range:
        if resource.local_version is None:
            raise ValueError(f"{resource.name} has no local version to patch from")
        return range(resource.local_version + 1, resource.target_version + 1)

    def _catch_up(self, resource: Resource) -> list[int]:
        """Fetch every patch in the range; return the versions that are missing."""
        logger = get_global_logger()
        missing: list[int] = []

        for version in self._patch_range(resource):
            key = resource.patch_key(version)
            if self.cache.contains(key):
                logger.verbose(
                    "PATCH", f"Skipping (known missing): {self.layout.patch_name(key)}"
                )
                missing.append(version)
                continue

            outcome = self.fetcher.fetch_patch(
                self.layout.patch_name(key), self.layout.patch_path(key)
            )
            if outcome is not DownloadOutcome.SUCCESS:
                self.cache.mark_missing(key)
                missing.append(version)

        return missing

    def _remove_patches(self, resource: Resource) -> None:
        for version in self._patch_range(resource):
            self._remove(self.layout.patch_path(resource.patch_key(version)))

    def _replace_full(self, resource: Resource, *, conditional: bool) -> Action:
        """Download the full file into staging and commit it if acceptable."""
        logger = get_global_logger()
        staged = self.layout.staging_path(resource.name)
        live = resource.local_path

        since: float | None = None
        if conditional:
            try:
                since = live.stat().st_mtime
            except FileNotFoundError:
                since = None

        staged.parent.mkdir(parents=True, exist_ok=True)
        self._remove(staged)

        outcome = self.fetcher.fetch_full(
            self.layout.full_name(resource.name), staged, since=since
        )

        if outcome is DownloadOutcome.NOT_MODIFIED:
            self._remove(staged)
            return "not_modified"
        if outcome is not DownloadOutcome.SUCCESS:
            self._remove(staged)
            logger.warning(
                "SYNC", f"Full download of {self.layout.full_name(resource.name)} failed"
            )
            return "failed"

        if self.replacer.commit(staged, live):
            return "replaced"
        return "rejected"

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as err:
            get_global_logger().warning("FILE", f"Can't remove {path}: {err}")
