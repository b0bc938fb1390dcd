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

"""Command-line interface for cvdsync.

Commands:

    sync: Bring the local database directory up to date
    history: List patches recorded as unavailable

Example:
    Typical cron entry:
        ```bash
        */30 * * * * cvdsync sync --config /etc/cvdsync.yaml
        ```

    Leave daily alone, show every request:
        ```bash
        $ cvdsync sync --skip-daily -v
        ```

Exit Codes:

- 0: The run completed. Databases that could not be updated are listed in
  the summary and warned about on stderr, but don't change the exit code.
- 1: Nothing was attempted: bad configuration, or the current versions
  could not be looked up.

"""

from __future__ import annotations

import argparse
from importlib.metadata import version
from pathlib import Path
import sys
import traceback

from cvdsync.config import load_config
from cvdsync.core import load_history, sync_databases
from cvdsync.exceptions import CVDSyncError
from cvdsync.layout import StorageLayout
from cvdsync.logging import get_logger, set_global_logger
from cvdsync.results import SyncResult

RULE = "=" * 70


def _fail(err: Exception, show_traceback: bool) -> int:
    print(f"Error: {err}")
    if show_traceback:
        traceback.print_exc()
    return 1


def _print_summary(result: SyncResult) -> None:
    print(RULE)
    print("SYNC RESULTS")
    print(RULE)
    print(f"Version record:  {result.record}")
    for item in result.results:
        local = "-" if item.local_version is None else item.local_version
        line = f"{item.name:<12} {local} -> {item.target_version}  {item.action}"
        if item.missing_patches:
            line += f" (missing: {' '.join(map(str, item.missing_patches))})"
        print(line)
    for name, status in result.prefetched.items():
        print(f"{name:<12} latest patch: {status}")
    for name in result.skipped:
        print(f"{name:<12} skipped")
    print(RULE)


def cmd_sync(args: argparse.Namespace) -> int:
    """Handler for 'cvdsync sync'.

    Returns:
        0 when the run completed, 1 on a configuration or version lookup
        failure (ConfigError, OracleError or any other CVDSyncError).

    """
    set_global_logger(get_logger(verbose=args.verbose, debug=args.debug))

    try:
        config = load_config(args.config, database_dir=args.database_dir)
        result = sync_databases(config, skip_fast_moving=args.skip_daily)
    except CVDSyncError as err:
        return _fail(err, args.verbose or args.debug)

    _print_summary(result)
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Handler for 'cvdsync history'. Prints one `name:version` per line."""
    set_global_logger(get_logger(verbose=args.verbose))

    try:
        config = load_config(args.config, database_dir=args.database_dir)
    except CVDSyncError as err:
        return _fail(err, args.verbose)

    cache = load_history(StorageLayout.from_config(config))
    for key in cache:
        print(key)
    if args.verbose:
        print(f"{len(cache)} known-missing patch(es)")
    return 0


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: $CVDSYNC_CONFIG or built-in defaults)",
    )
    parser.add_argument(
        "--database-dir",
        default=None,
        help="Database directory (overrides config and $CVDSYNC_DATABASE_DIR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every mirror request and file operation",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cvdsync",
        description="Keep a local ClamAV database mirror up to date.",
    )
    parser.add_argument(
        "--version", action="version", version=f"cvdsync {version('cvdsync')}"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser(
        "sync",
        help="Update databases from the mirrors",
        description=(
            "Fetch patches, or full files where patches are missing, so every "
            "database matches the published version."
        ),
    )
    _add_common(sync)
    sync.add_argument(
        "--skip-daily",
        action="store_true",
        help="Don't touch fast-moving databases (daily), including the latest-patch prefetch",
    )
    sync.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Also log headers, byte counts and probe commands (implies -v)",
    )
    sync.set_defaults(func=cmd_sync)

    history = commands.add_parser(
        "history",
        help="List patches known to be unavailable",
    )
    _add_common(history)
    history.set_defaults(func=cmd_history)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Console-script entry point."""
    args = build_parser().parse_args(argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
