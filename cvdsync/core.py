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

"""Core orchestration for cvdsync.

This module runs one complete sync of a database directory:

1. Load the missing-patch history
2. Look up the published versions (abort on failure, nothing touched yet)
3. Save the raw version record next to the databases
4. For each configured database, in order:
    - probe the installed version
    - reconcile (patches or full file)
    - for fast-moving databases, prefetch the newest patch

Design Principles:

- Only the version lookup can abort a run; every per-database failure is
  absorbed (probe errors here, download errors in the reconciler) and
  reported in the result
- Collaborators (oracle, probe, fetcher) are injectable for testing
- Functions return structured data (dataclasses) for easy testing

Example:
    Programmatic usage:
        ```python
        from cvdsync.config import load_config
        from cvdsync.core import sync_databases

        result = sync_databases(load_config(), skip_fast_moving=True)
        for item in result.results:
            print(f"{item.name}: {item.action}")
        ```

"""

from __future__ import annotations

from typing import Any

from cvdsync.exceptions import ConfigError
from cvdsync.io import MirrorFetcher
from cvdsync.layout import Resource, StorageLayout
from cvdsync.logging import get_global_logger
from cvdsync.prefetch import PatchPrefetcher
from cvdsync.reconciler import UpdateReconciler
from cvdsync.results import ReconcileResult, SyncResult
from cvdsync.state import MissingPatchCache
from cvdsync.versioning import (
    UNKNOWN_VERSION,
    DnsVersionOracle,
    SigtoolProbe,
    VersionOracle,
    VersionProbe,
)


def build_resource(
    name: str,
    target_version: int,
    layout: StorageLayout,
    probe: VersionProbe,
    *,
    fast_moving: bool = False,
) -> Resource:
    """Describe a database as it is on disk right now.

    The probe is only run on a non-empty file; a missing file yields
    local_version None and an empty one yields UNKNOWN_VERSION.

    Args:
        name: Database name.
        target_version: Published version from the version record.
        layout: Naming rules for the database directory.
        probe: Local version probe.
        fast_moving: Whether the newest patch should be prefetched.

    Returns:
        A Resource ready to be reconciled.

    """
    path = layout.full_path(name)
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        local_version: int | None = None
    else:
        local_version = probe.probe(path) if size > 0 else UNKNOWN_VERSION

    return Resource(
        name=name,
        local_path=path,
        local_version=local_version,
        target_version=target_version,
        fast_moving=fast_moving,
    )


def load_history(layout: StorageLayout) -> MissingPatchCache:
    """Load the missing-patch history, starting empty if it can't be read."""
    cache = MissingPatchCache(layout.history_path)
    try:
        cache.load()
    except OSError as err:
        get_global_logger().warning(
            "HISTORY", f"Can't read history {layout.history_path}: {err}"
        )
    return cache


def sync_databases(
    config: dict[str, Any],
    *,
    skip_fast_moving: bool = False,
    oracle: VersionOracle | None = None,
    probe: VersionProbe | None = None,
    fetcher: MirrorFetcher | None = None,
) -> SyncResult:
    """Synchronize every configured database with the mirrors.

    Args:
        config: Configuration dict from load_config().
        skip_fast_moving: If True, databases flagged fast_moving (daily) are
            skipped entirely: no reconciliation and no prefetch.
        oracle: Version oracle. Defaults to the configured DNS TXT lookup.
        probe: Local version probe. Defaults to sigtool.
        fetcher: Mirror fetcher. Defaults to one built from the configured
            mirrors; a fetcher built here is closed before returning.

    Returns:
        SyncResult with one ReconcileResult per processed database.

    Raises:
        OracleError: If the published versions can't be determined. Raised
            before any file in the database directory is modified.
        ConfigError: If the database directory can't be created.

    """
    logger = get_global_logger()
    layout = StorageLayout.from_config(config)
    databases = config["databases"]
    total = len(databases) + 1

    cache = load_history(layout)

    logger.step(1, total, "Looking up current database versions...")
    if oracle is None:
        oracle = DnsVersionOracle(config["oracle"]["domain"], timeout=config["timeout"])
    record = oracle.lookup()

    # Resolve every target before touching the disk, so a short record aborts cleanly.
    targets: dict[str, int] = {}
    for db in databases:
        if db.get("fast_moving") and skip_fast_moving:
            continue
        targets[db["name"]] = record.version_for(db["field"])
    logger.verbose(
        "SYNC", " ".join(f"{name}={version}" for name, version in targets.items())
    )

    try:
        layout.ensure_dirs()
    except OSError as err:
        raise ConfigError(f"Can't use database directory {layout.base_dir}: {err}") from err

    try:
        layout.record_path.write_text(record.raw, encoding="utf-8")
    except OSError as err:
        logger.warning("SYNC", f"Can't write {layout.record_path}: {err}")

    if probe is None:
        probe = SigtoolProbe(
            config["probe"]["command"], timeout=config["probe"].get("timeout", 30)
        )

    owns_fetcher = fetcher is None
    if fetcher is None:
        fetcher = MirrorFetcher(
            config["mirrors"]["full"],
            config["mirrors"]["patch"],
            timeout=config["timeout"],
            user_agent=config["user_agent"],
        )

    reconciler = UpdateReconciler(layout, fetcher, cache)
    prefetcher = PatchPrefetcher(layout, fetcher, cache)
    results: list[ReconcileResult] = []
    prefetched: dict[str, str] = {}
    skipped: list[str] = []

    try:
        for index, db in enumerate(databases, start=2):
            name = db["name"]
            fast_moving = bool(db.get("fast_moving"))

            if name not in targets:
                logger.step(index, total, f"Skipping {name} (fast-moving, skipped on request)")
                skipped.append(name)
                continue

            logger.step(index, total, f"Updating {name}...")
            try:
                resource = build_resource(
                    name, targets[name], layout, probe, fast_moving=fast_moving
                )
            except Exception as err:
                logger.warning("SYNC", f"Can't inspect local {name}: {err}")
                results.append(
                    ReconcileResult(
                        name=name,
                        state="version_unknown",
                        action="failed",
                        local_version=None,
                        target_version=targets[name],
                        error=str(err),
                    )
                )
                continue

            results.append(reconciler.reconcile(resource))

            if fast_moving:
                try:
                    prefetched[name] = prefetcher.prefetch_latest(resource)
                except Exception as err:
                    logger.warning("PATCH", f"Prefetch for {name} failed: {err}")
                    prefetched[name] = "failed"
    finally:
        if owns_fetcher:
            fetcher.close()

    return SyncResult(
        record=record.raw, results=results, prefetched=prefetched, skipped=skipped
    )
