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

"""Persistent state for cvdsync.

The only state kept between runs is the missing-patch history: the set of
incremental patches that every mirror failed to serve. Everything else
(local versions, file freshness) is recomputed from the filesystem on each
run.

Public API:

- MissingPatchCache: Load/query/extend the history file
- PatchKey: (database name, version) identifying one patch

"""

from .history import MissingPatchCache, PatchKey

__all__ = ["MissingPatchCache", "PatchKey"]
