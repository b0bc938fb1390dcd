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

"""Version sources for cvdsync.

Two sides of the version comparison live here:

- oracle: the version currently published upstream (DNS TXT record)
- probe: the version installed locally (sigtool)

Public API:

- DnsVersionOracle: TXT lookup returning a VersionRecord
- VersionRecord: Colon-delimited record with per-field version access
- VersionOracle: Protocol for alternative oracles
- SigtoolProbe: Local version via `sigtool -i`
- VersionProbe: Protocol for alternative probes
- UNKNOWN_VERSION: Sentinel returned when a probe can't tell

"""

from .oracle import DnsVersionOracle, VersionOracle, VersionRecord
from .probe import UNKNOWN_VERSION, SigtoolProbe, VersionProbe

__all__ = [
    "DnsVersionOracle",
    "VersionOracle",
    "VersionRecord",
    "SigtoolProbe",
    "VersionProbe",
    "UNKNOWN_VERSION",
]
