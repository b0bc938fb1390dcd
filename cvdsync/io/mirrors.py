"""
Mirror-failover HTTP(S) downloads for cvdsync.

This module fetches full database files and incremental patches from an
ordered list of mirrors. The first mirror that answers wins; later mirrors
are only contacted when every earlier one failed.

Key Features:

- **Strict Priority Order** - Mirrors are tried one at a time, in configured
  order. There is no parallelism and no urllib3-level retry: the mirror list
  is the retry policy.
- **Conditional Requests (HTTP 304 Not Modified)** - Full-file fetches send
  If-Modified-Since when the caller passes the live file's mtime. A 304 ends
  the whole call; other mirrors are not asked.
- **Atomic Writes** - Bodies stream to `<destination>.part` and are renamed
  into place only once complete. Failed attempts leave nothing behind.
- **Server Timestamps** - When a full-file response carries Last-Modified,
  the written file takes that mtime, so freshness checks compare publication
  times rather than download times.
- **Outcome Classification** - Every call returns a DownloadOutcome instead
  of raising, so callers can decide how to treat "unavailable".

Constants:

- DEFAULT_CHUNK (int): Stream chunk size (1 MiB).
- DEFAULT_TIMEOUT (int): Per-request timeout in seconds.

Example:
    Basic usage:

    >>> from pathlib import Path
    >>> from cvdsync.io import DownloadOutcome, MirrorFetcher
    >>> with MirrorFetcher(
    ...     ["https://database.clamav.net"],
    ...     ["https://database.clamav.net"],
    ... ) as fetcher:
    ...     outcome = fetcher.fetch_patch("daily-27001.cdiff", Path("daily-27001.cdiff"))
    >>> outcome is DownloadOutcome.SUCCESS
    True

Notes:
- Timeouts are per-request, not total download time
- 404 on a patch is per-mirror ambiguous (mirrors lag), so it advances
  to the next mirror like any other failure
- Accept-Encoding is pinned to identity; databases are already compressed
"""

from __future__ import annotations

from collections.abc import Sequence
from email.utils import formatdate, parsedate_to_datetime
from enum import Enum
import os
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cvdsync.logging import get_global_logger

# Stream size per chunk (1 MiB).
DEFAULT_CHUNK = 1024 * 1024

DEFAULT_TIMEOUT = 30

DEFAULT_USER_AGENT = "cvdsync/0.1"


class DownloadOutcome(Enum):
    """Result of one fetch call across the mirror list."""

    SUCCESS = "success"
    NOT_MODIFIED = "not_modified"
    NOT_FOUND = "not_found"
    TRANSIENT_FAILURE = "transient_failure"


def make_session(user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    """
    Create a requests.Session for mirror downloads.

    - Disables transport-level retries; failover to the next mirror is the
      only retry mechanism.
    - Sets the configured User-Agent. ClamAV mirrors reject unknown agents.
    - Forces 'Accept-Encoding: identity' so bodies are written byte-for-byte.
    """
    s = requests.Session()
    retries = Retry(total=0, raise_on_status=False)
    s.headers.update(
        {
            "User-Agent": user_agent,
            "Accept-Encoding": "identity",
        }
    )
    s.mount("http://", HTTPAdapter(max_retries=retries))
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


def _join(mirror: str, path: str) -> str:
    return f"{mirror.rstrip('/')}/{path.lstrip('/')}"


def _discard(*paths: Path) -> None:
    """Remove leftovers from a failed attempt."""
    logger = get_global_logger()
    for p in paths:
        try:
            p.unlink(missing_ok=True)
        except OSError as err:
            logger.warning("FILE", f"Can't remove {p}: {err}")


def _apply_last_modified(target: Path, header: str | None) -> None:
    """Set target's mtime from a Last-Modified header, if it parses."""
    if not header:
        return
    try:
        stamp = parsedate_to_datetime(header).timestamp()
    except (TypeError, ValueError):
        get_global_logger().debug("HTTP", f"Ignoring bad Last-Modified: {header!r}")
        return
    os.utime(target, (stamp, stamp))


class MirrorFetcher:
    """Download artifacts from ordered mirror lists.

    Attributes:
        full_mirrors: Base URLs serving full files, highest priority first.
        patch_mirrors: Base URLs serving patches, highest priority first.
        timeout: Per-request timeout in seconds.

    """

    def __init__(
        self,
        full_mirrors: Sequence[str],
        patch_mirrors: Sequence[str],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        session: requests.Session | None = None,
    ) -> None:
        self.full_mirrors = list(full_mirrors)
        self.patch_mirrors = list(patch_mirrors)
        self.timeout = timeout
        self.session = session or make_session(user_agent)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> MirrorFetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def fetch_full(
        self,
        resource_path: str,
        destination: Path,
        since: float | None = None,
    ) -> DownloadOutcome:
        """Download a full file, trying each full-file mirror in order.

        Args:
            resource_path: Path relative to the mirror base, e.g. "main.cvd".
            destination: File to write the body to.
            since: Optional POSIX timestamp for If-Modified-Since.

        Returns:
            SUCCESS when a mirror delivered the body, NOT_MODIFIED when a
            mirror answered 304 (destination untouched), TRANSIENT_FAILURE
            when every mirror failed.

        """
        logger = get_global_logger()
        destination = Path(destination)

        headers: dict[str, str] = {}
        if since is not None:
            headers["If-Modified-Since"] = formatdate(since, usegmt=True)
            logger.debug(
                "HTTP", f"Using If-Modified-Since: {headers['If-Modified-Since']}"
            )

        for mirror in self.full_mirrors:
            url = _join(mirror, resource_path)
            logger.verbose("MIRROR", f"Trying {url} ...")
            try:
                resp = self.session.get(
                    url,
                    stream=True,
                    allow_redirects=True,
                    timeout=self.timeout,
                    headers=headers,
                )
            except requests.RequestException as err:
                logger.warning("MIRROR", f"Failed to download {url}: {err}")
                continue

            with resp:
                # Conditional request satisfied: no other mirror is asked.
                if resp.status_code == 304:
                    logger.verbose("MIRROR", f"File not modified: {resource_path}")
                    return DownloadOutcome.NOT_MODIFIED

                if not 200 <= resp.status_code < 300:
                    logger.warning(
                        "MIRROR",
                        f"Failed to download {url}: {resp.status_code} {resp.reason}",
                    )
                    continue

                if not self._write_body(resp, url, destination):
                    continue

                try:
                    _apply_last_modified(destination, resp.headers.get("Last-Modified"))
                except OSError as err:
                    logger.warning("FILE", f"Can't set mtime on {destination}: {err}")

            logger.verbose("MIRROR", f"Downloaded: {url} -> {destination}")
            return DownloadOutcome.SUCCESS

        logger.warning("MIRROR", f"All full-file mirrors failed for {resource_path}")
        return DownloadOutcome.TRANSIENT_FAILURE

    def fetch_patch(self, patch_path: str, destination: Path) -> DownloadOutcome:
        """Download a patch, trying each patch mirror in order.

        Args:
            patch_path: Path relative to the mirror base, e.g. "daily-27001.cdiff".
            destination: File to write the body to.

        Returns:
            SUCCESS when a mirror delivered the patch, NOT_FOUND when no
            mirror could (404s and errors alike).

        """
        logger = get_global_logger()
        destination = Path(destination)

        for mirror in self.patch_mirrors:
            url = _join(mirror, patch_path)
            logger.verbose("PATCH", f"Trying {url} ...")
            try:
                resp = self.session.get(
                    url, stream=True, allow_redirects=True, timeout=self.timeout
                )
            except requests.RequestException as err:
                logger.warning("PATCH", f"Failed to download {url}: {err}")
                continue

            with resp:
                if resp.status_code == 404:
                    logger.verbose("PATCH", f"Not found (404): {url}")
                    continue
                if not 200 <= resp.status_code < 300:
                    logger.warning(
                        "PATCH",
                        f"Failed to download {url}: {resp.status_code} {resp.reason}",
                    )
                    continue
                if not self._write_body(resp, url, destination):
                    continue

            logger.verbose("PATCH", f"Downloaded: {url} -> {destination}")
            return DownloadOutcome.SUCCESS

        logger.verbose("PATCH", f"{patch_path} not available on any mirror")
        return DownloadOutcome.NOT_FOUND

    def _write_body(
        self, resp: requests.Response, url: str, destination: Path
    ) -> bool:
        """Stream the body to destination via a .part file.

        Returns:
            True on success. On failure the partial file (and any stale
            destination) is removed, a warning is logged, and False returned.

        """
        logger = get_global_logger()
        tmp = destination.with_name(destination.name + ".part")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            written = 0
            with tmp.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK):
                    if not chunk:
                        continue
                    f.write(chunk)
                    written += len(chunk)
            tmp.replace(destination)
        except (requests.RequestException, OSError) as err:
            logger.warning("MIRROR", f"Failed to download {url}: {err}")
            _discard(tmp, destination)
            return False

        logger.debug("FILE", f"Wrote {written} bytes to {destination}")
        return True
