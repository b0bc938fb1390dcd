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

"""Console output for cvdsync.

Library modules never print directly. They fetch the process-wide logger
with get_global_logger() and call one of four methods:

- step(n, total, msg): progress through the databases, always shown
- warning(prefix, msg): mirror failures, rejected commits, unreadable
  history; always shown, on stderr
- verbose(prefix, msg): per-request detail, shown with -v
- debug(prefix, msg): headers, byte counts, probe commands, shown with -d

Until the CLI installs a ConsoleLogger the global logger is silent, so
importing cvdsync from another program produces no output.

Example:
    ```python
    from cvdsync.logging import get_logger, set_global_logger

    set_global_logger(get_logger(verbose=True))
    ```

Prefixes in use: MIRROR, PATCH, HTTP, FILE, STAGE, HISTORY, ORACLE, PROBE,
CONFIG, SYNC.
"""

from __future__ import annotations

import sys
from typing import Protocol, TextIO


class Logger(Protocol):
    """What library code may call on a logger."""

    def step(self, step: int, total: int, message: str) -> None: ...

    def verbose(self, prefix: str, message: str) -> None: ...

    def debug(self, prefix: str, message: str) -> None: ...

    def warning(self, prefix: str, message: str) -> None: ...


class ConsoleLogger:
    """Print progress to stdout and warnings to stderr.

    Cron mails whatever a job writes to stderr, so warnings reach the
    operator even when stdout is sent to /dev/null.

    Args:
        verbose: Show verbose messages.
        debug: Show debug messages too (implies verbose).
        out: Stream for step/verbose/debug output. Defaults to sys.stdout
            as it is at call time, so pytest's capsys sees it.
        err: Stream for warnings. Defaults to sys.stderr.

    """

    def __init__(
        self,
        verbose: bool = False,
        debug: bool = False,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.show_verbose = verbose or debug
        self.show_debug = debug
        self._out = out
        self._err = err

    def _emit(self, line: str, *, error: bool = False) -> None:
        if error:
            stream = self._err if self._err is not None else sys.stderr
        else:
            stream = self._out if self._out is not None else sys.stdout
        print(line, file=stream)

    def step(self, step: int, total: int, message: str) -> None:
        self._emit(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        if self.show_verbose:
            self._emit(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self.show_debug:
            self._emit(f"[{prefix}] {message}")

    def warning(self, prefix: str, message: str) -> None:
        self._emit(f"[{prefix}] WARNING: {message}", error=True)


class SilentLogger:
    """Discard everything. The default until a CLI command runs."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass

    def warning(self, prefix: str, message: str) -> None:
        pass


_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Build a console logger for the requested verbosity."""
    return ConsoleLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Install the logger every cvdsync module will use from now on."""
    global _global_logger
    _global_logger = logger
