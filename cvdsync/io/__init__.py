"""Network input for cvdsync.

This package downloads full databases and incremental patches from ordered
mirror lists, with conditional requests and atomic writes.

Modules:

mirrors : module
    Mirror-failover downloads returning a DownloadOutcome.

Public API:

MirrorFetcher : class
    fetch_full() and fetch_patch() across configured mirrors.
DownloadOutcome : enum
    SUCCESS, NOT_MODIFIED, NOT_FOUND or TRANSIENT_FAILURE.
make_session : function
    requests.Session with the headers mirrors expect.

Example:
    from pathlib import Path
    from cvdsync.io import MirrorFetcher

    with MirrorFetcher(full_mirrors, patch_mirrors, timeout=30) as fetcher:
        outcome = fetcher.fetch_full("main.cvd", Path("temp/main.cvd"))

"""

from .mirrors import DownloadOutcome, MirrorFetcher, make_session

__all__ = ["DownloadOutcome", "MirrorFetcher", "make_session"]
