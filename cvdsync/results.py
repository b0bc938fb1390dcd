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

"""Public API return types for cvdsync.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from cvdsync.config import load_config
        from cvdsync.core import sync_databases

        result = sync_databases(load_config())
        for item in result.results:
            print(item.name, item.action)
        ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ResourceStateName = Literal[
    "absent",
    "zero_size",
    "up_to_date",
    "behind",
    "version_unknown",
    "ahead",
]

Action = Literal[
    "up_to_date",
    "patched",
    "replaced",
    "not_modified",
    "rejected",
    "failed",
]


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of reconciling one database.

    Attributes:
        name: Database name.
        state: State detected at the start of the pass.
        action: What happened. "patched" means the full patch range is on
            disk; "replaced" means a new full file was committed;
            "not_modified" means the mirror confirmed the local copy;
            "rejected" means a download arrived but was empty or not newer;
            "failed" means nothing usable could be fetched.
        local_version: Installed version at the start of the pass.
        target_version: Published version.
        missing_patches: Versions whose patch was unavailable, ascending.
        error: Message of an unexpected error, if one was absorbed.
    """

    name: str
    state: ResourceStateName
    action: Action
    local_version: int | None
    target_version: int
    missing_patches: tuple[int, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class SyncResult:
    """Result of a whole sync run.

    Attributes:
        record: The version record the run was based on.
        results: One ReconcileResult per database, in processing order.
        prefetched: Prefetch outcome per fast-moving database
            ("success", "not_found", "cached_missing", "present", "failed").
        skipped: Databases skipped on request (e.g. --skip-daily).
        status: Always "success" when the run completed.
    """

    record: str
    results: list[ReconcileResult] = field(default_factory=list)
    prefetched: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    status: str = "success"
