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

"""Configuration loading for cvdsync.

Built-in defaults are deep-merged with an optional YAML file and the
database directory overrides (environment variable, then CLI flag).

Public API:

- load_config: Load and merge configuration for a run
- DEFAULT_CONFIG: The built-in defaults

Example:
    Basic usage:

        from cvdsync.config import load_config

        config = load_config()
        print(config["mirrors"]["full"][0])  # "https://database.clamav.net"

"""

from .loader import DEFAULT_CONFIG, load_config

__all__ = ["DEFAULT_CONFIG", "load_config"]
