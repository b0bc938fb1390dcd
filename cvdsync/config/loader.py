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

"""
Configuration loading and merging for cvdsync.

Configuration Layers
--------------------
1. **Built-in defaults** (DEFAULT_CONFIG)
   - Official ClamAV mirrors, main/daily/bytecode databases
   - Always present; a bare `cvdsync sync` works without any file

2. **Configuration file** (YAML)
   - Named by `--config` or the CVDSYNC_CONFIG environment variable
   - Overrides built-in defaults

3. **Database directory override**
   - CVDSYNC_DATABASE_DIR environment variable, then `--database-dir`
   - Overrides `database_dir` from the previous layers

Merge Behavior
--------------
The loader performs deep merging with "last wins" semantics:
  - **Dicts**: Recursively merged (keys from overlay override base)
  - **Lists**: Completely replaced (NOT appended/extended)
  - **Scalars**: Overwritten (strings, numbers, booleans)

So a file that only lists `mirrors.patch` keeps the default full-file mirrors,
but replaces the whole patch mirror list.

Error Handling
--------------
- ConfigError: explicit config file missing, YAML parse errors, empty files,
  invalid structure or values
- All errors are chained with "from err" for better debugging

Examples
--------
Basic usage:

    >>> from pathlib import Path
    >>> from cvdsync.config import load_config
    >>> cfg = load_config(Path("/etc/cvdsync.yaml"))
    >>> print(cfg["database_dir"])
    /var/www/html/clamav
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml

from cvdsync.exceptions import ConfigError
from cvdsync.logging import get_global_logger

CONFIG_ENV_VAR = "CVDSYNC_CONFIG"
DATABASE_DIR_ENV_VAR = "CVDSYNC_DATABASE_DIR"

DEFAULT_CONFIG: dict[str, Any] = {
    "database_dir": "/var/www/html/clamav",
    "timeout": 30,
    "user_agent": (
        "ClamAV/1.4.3 (OS: Linux, ARCH: x86_64, CPU: x86_64, "
        "UUID: 98425604-444c-40ae-969a-df296bfa1581)"
    ),
    "history_file": "cdiff_history.txt",
    "record_file": "dns.txt",
    "temp_dir": "temp",
    "full_extension": "cvd",
    "patch_extension": "cdiff",
    "oracle": {
        "domain": "current.cvd.clamav.net",
    },
    "probe": {
        "command": "sigtool",
        "timeout": 30,
    },
    "mirrors": {
        "full": [
            "https://database.clamav.net",
            "https://mirror.truenetwork.ru/clamav",
        ],
        "patch": [
            "https://database.clamav.net",
            "https://mirror.truenetwork.ru/clamav",
        ],
    },
    "databases": [
        {"name": "main", "field": 1},
        {"name": "daily", "field": 2, "fast_moving": True},
        {"name": "bytecode", "field": 7},
    ],
}


# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """
    Load a YAML file and return the parsed Python object.

    Raises:
      ConfigError - when the file is missing, empty or not valid YAML
    """
    if not p.exists():
        raise ConfigError(f"config file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    if data is None:
        raise ConfigError(f"YAML file is empty: {p}")
    return data


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts with "overlay wins".

    Rules:
      - dict + dict -> deep merge
      - list + list -> overlay REPLACES base (not concatenated)
      - everything else -> overlay overwrites base

    This function does not mutate inputs; returns a new dict.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


# -------------------------------
# Validation
# -------------------------------


def _validate(cfg: dict[str, Any]) -> None:
    """Check the merged configuration, raising ConfigError on the first problem."""
    timeout = cfg.get("timeout")
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(f"'timeout' must be a positive number, got {timeout!r}")

    mirrors = cfg.get("mirrors")
    if not isinstance(mirrors, dict):
        raise ConfigError("'mirrors' must be a mapping with 'full' and 'patch' lists")
    for kind in ("full", "patch"):
        urls = mirrors.get(kind)
        if not isinstance(urls, list) or not urls:
            raise ConfigError(f"'mirrors.{kind}' must be a non-empty list of URLs")
        for url in urls:
            if not isinstance(url, str) or not url.startswith(("http://", "https://")):
                raise ConfigError(f"invalid mirror URL in 'mirrors.{kind}': {url!r}")

    databases = cfg.get("databases")
    if not isinstance(databases, list) or not databases:
        raise ConfigError("'databases' must be a non-empty list")
    seen: set[str] = set()
    for entry in databases:
        if not isinstance(entry, dict):
            raise ConfigError(f"database entry must be a mapping, got {entry!r}")
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"database entry is missing 'name': {entry!r}")
        field = entry.get("field")
        if isinstance(field, bool) or not isinstance(field, int) or field < 0:
            raise ConfigError(
                f"database '{name}' needs a non-negative integer 'field', got {field!r}"
            )
        if name in seen:
            raise ConfigError(f"database '{name}' is defined more than once")
        seen.add(name)

    for key in ("database_dir", "history_file", "record_file", "temp_dir"):
        if not isinstance(cfg.get(key), str) or not cfg[key]:
            raise ConfigError(f"'{key}' must be a non-empty string")


# -------------------------------
# Public API
# -------------------------------


def load_config(
    config_path: Path | None = None,
    *,
    database_dir: str | Path | None = None,
) -> dict[str, Any]:
    """Load the effective configuration for a sync run.

    Args:
        config_path: Optional YAML file. When omitted, the CVDSYNC_CONFIG
            environment variable is consulted; when that is unset too, only
            the built-in defaults are used.
        database_dir: Optional override for the database directory. Wins over
            both the file and the CVDSYNC_DATABASE_DIR environment variable.

    Returns:
        A merged configuration dict with the same shape as DEFAULT_CONFIG.

    Raises:
        ConfigError: On missing/invalid YAML or invalid values.

    Example:
        Override only the patch mirrors:
            ```python
            cfg = load_config(Path("cvdsync.yaml"))
            cfg["mirrors"]["full"]   # still the defaults
            ```
    """
    logger = get_global_logger()

    merged = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is None and os.environ.get(CONFIG_ENV_VAR):
        config_path = Path(os.environ[CONFIG_ENV_VAR])

    if config_path is not None:
        config_path = Path(config_path).resolve()
        logger.verbose("CONFIG", f"Loading: {config_path}")
        overlay = _load_yaml_file(config_path)
        if not isinstance(overlay, dict):
            raise ConfigError(f"top-level YAML must be a mapping (dict): {config_path}")
        merged = _deep_merge_dicts(merged, overlay)
    else:
        logger.verbose("CONFIG", "No config file given, using built-in defaults")

    env_dir = os.environ.get(DATABASE_DIR_ENV_VAR)
    if env_dir:
        logger.verbose("CONFIG", f"{DATABASE_DIR_ENV_VAR} overrides database_dir")
        merged["database_dir"] = env_dir
    if database_dir is not None:
        merged["database_dir"] = str(database_dir)

    _validate(merged)

    logger.debug("CONFIG", f"database_dir={merged['database_dir']}")
    logger.debug("CONFIG", f"full mirrors={merged['mirrors']['full']}")
    logger.debug("CONFIG", f"patch mirrors={merged['mirrors']['patch']}")

    return merged
