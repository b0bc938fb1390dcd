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

"""Latest-patch prefetch for fast-moving databases.

Clients of a local mirror ask for `daily-<current>.cdiff` as soon as the
published version moves. The prefetcher fetches that single patch, keyed at
the published version, regardless of what is installed locally. A miss is
recorded in the history like any other.
"""

from __future__ import annotations

from cvdsync.io import DownloadOutcome, MirrorFetcher
from cvdsync.layout import Resource, StorageLayout
from cvdsync.logging import get_global_logger
from cvdsync.state import MissingPatchCache


class PatchPrefetcher:
    """Fetch the patch for a database's current published version."""

    def __init__(
        self,
        layout: StorageLayout,
        fetcher: MirrorFetcher,
        cache: MissingPatchCache,
    ) -> None:
        self.layout = layout
        self.fetcher = fetcher
        self.cache = cache

    def prefetch_latest(self, resource: Resource) -> str:
        """Make sure the newest patch is on disk or recorded as missing.

        Returns:
            "cached_missing" or "present" when nothing was requested,
            otherwise the DownloadOutcome value of the fetch.

        """
        logger = get_global_logger()
        key = resource.patch_key(resource.target_version)
        name = self.layout.patch_name(key)

        if self.cache.contains(key):
            logger.verbose("PATCH", f"Skipping (known missing): {name}")
            return "cached_missing"

        path = self.layout.patch_path(key)
        if path.exists():
            logger.debug("PATCH", f"Already present: {name}")
            return "present"

        outcome = self.fetcher.fetch_patch(name, path)
        if outcome is not DownloadOutcome.SUCCESS:
            self.cache.mark_missing(key)
        return outcome.value
