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

"""Current-version lookup for cvdsync.

ClamAV publishes the current version of every database in a single DNS TXT
record, `current.cvd.clamav.net`. The record is colon-delimited and each
database's version sits at a fixed position:

    0.103.12:62:27433:1729072140:1:90:49192:334
    ^engine  ^main ^daily                     ^bytecode

Field positions are configured per database (main=1, daily=2, bytecode=7),
so the parser itself only splits and converts.

This module uses dnspython for the TXT query. Any failure (no answer,
timeout, malformed record) raises OracleError, which aborts the run before
anything on disk changes.

Example:
    Look up the daily version:
        ```python
        from cvdsync.versioning.oracle import DnsVersionOracle

        record = DnsVersionOracle("current.cvd.clamav.net").lookup()
        print(record.version_for(2))  # 27433
        ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import dns.exception
import dns.resolver

from cvdsync.exceptions import OracleError
from cvdsync.logging import get_global_logger

DEFAULT_DOMAIN = "current.cvd.clamav.net"


@dataclass(frozen=True)
class VersionRecord:
    """Parsed version record.

    Attributes:
        raw: The record text as received (quotes stripped).
        fields: The colon-separated fields.

    """

    raw: str
    fields: tuple[str, ...]

    @classmethod
    def parse(cls, text: str) -> VersionRecord:
        """Split a TXT record into fields.

        Raises:
            OracleError: If the record is empty or has no colon.

        """
        raw = text.strip().strip('"').strip()
        if not raw or ":" not in raw:
            raise OracleError(f"malformed version record: {text!r}")
        return cls(raw=raw, fields=tuple(part.strip() for part in raw.split(":")))

    def version_for(self, field: int) -> int:
        """Return the positive integer version stored at a field position.

        Raises:
            OracleError: If the field is missing, not an integer, or not positive.

        """
        try:
            value = int(self.fields[field])
        except IndexError:
            raise OracleError(
                f"version record has {len(self.fields)} fields, no field {field}: {self.raw}"
            ) from None
        except ValueError as err:
            raise OracleError(
                f"field {field} of version record is not a number: {self.raw}"
            ) from err
        if value <= 0:
            raise OracleError(f"field {field} of version record is not positive: {self.raw}")
        return value


class VersionOracle(Protocol):
    """Anything that can produce the current version record."""

    def lookup(self) -> VersionRecord:
        """Return the current record or raise OracleError."""
        ...


class DnsVersionOracle:
    """Resolve the version record from a DNS TXT lookup.

    Attributes:
        domain: Name whose TXT record holds the versions.
        timeout: Total lifetime of the DNS query in seconds.

    """

    def __init__(
        self,
        domain: str = DEFAULT_DOMAIN,
        *,
        timeout: float = 30,
        resolver: Any | None = None,
    ) -> None:
        self.domain = domain
        self.timeout = timeout
        self._resolver = resolver

    def _get_resolver(self) -> Any:
        if self._resolver is None:
            self._resolver = dns.resolver.Resolver()
            self._resolver.lifetime = self.timeout
        return self._resolver

    def lookup(self) -> VersionRecord:
        """Query the TXT record and parse the first answer.

        Returns:
            The parsed VersionRecord.

        Raises:
            OracleError: On any DNS failure or a malformed record.

        """
        logger = get_global_logger()
        logger.verbose("ORACLE", f"Querying TXT record for {self.domain}")

        try:
            answer = self._get_resolver().resolve(self.domain, "TXT")
        except dns.exception.DNSException as err:
            raise OracleError(f"Unable to get TXT record for {self.domain}: {err}") from err

        for rdata in answer:
            text = b"".join(rdata.strings).decode("ascii", errors="replace")
            logger.verbose("ORACLE", f"TXT from DNS: {text}")
            return VersionRecord.parse(text)

        raise OracleError(f"Empty TXT answer for {self.domain}")
