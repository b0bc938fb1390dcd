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

"""Exception hierarchy for cvdsync.

This module defines a small exception hierarchy that lets callers tell
configuration problems apart from network problems:

- ConfigError: Configuration-related errors (YAML parse, missing fields, validation failures)
- NetworkError: Network-related errors that escape the mirror fallback loop
- OracleError: The current-version lookup failed; the run must be aborted

All exceptions inherit from CVDSyncError, allowing users to catch every
cvdsync error with a single except clause if needed.

Note that mirror and filesystem failures during reconciliation are NOT raised
to callers. They are absorbed per database and reported through the logger
and the returned results.

Example:
    Catching specific error types:
        ```python
        from cvdsync.config import load_config
        from cvdsync.core import sync_databases
        from cvdsync.exceptions import ConfigError, OracleError

        try:
            result = sync_databases(load_config(Path("cvdsync.yaml")))
        except ConfigError as e:
            print(f"Configuration error: {e}")
        except OracleError as e:
            print(f"Version lookup failed: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "CVDSyncError",
    "ConfigError",
    "NetworkError",
    "OracleError",
]


class CVDSyncError(Exception):
    """Base exception for all cvdsync errors."""

    pass


class ConfigError(CVDSyncError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, invalid structure)
    - Missing configuration files named explicitly by the user
    - Invalid mirror lists, timeouts or database definitions
    """

    pass


class NetworkError(CVDSyncError):
    """Raised for network-related errors that abort an operation."""

    pass


class OracleError(NetworkError):
    """Raised when the current database versions cannot be determined.

    This is the only failure that aborts a whole run. It is raised before any
    file in the database directory is touched.

    Example:
        Handling an unavailable version record:
            ```python
            from cvdsync.exceptions import OracleError

            try:
                record = oracle.lookup()
            except OracleError as e:
                print(f"Unable to get TXT record: {e}")
            ```
    """

    pass
