"""
cvdsync - ClamAV database mirror synchronizer

Keeps a directory of versioned ClamAV databases (main, daily, bytecode)
in step with the published versions, preferring incremental .cdiff patches
over full .cvd downloads.

cvdsync provides:
  - DNS TXT lookup of the currently published versions
  - Ordered mirror failover with conditional (If-Modified-Since) requests
  - All-or-nothing patch sets with full-file fallback
  - A persistent history of patches no mirror serves, never re-requested
  - Staged, validated, atomic replacement of full files

Quick Start
-----------
Update the default directory (/var/www/html/clamav):

    $ cvdsync sync

Skip the daily database:

    $ cvdsync sync --skip-daily

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    Run orchestration (sync_databases).
reconciler : module
    Per-database patch-or-full decision.
prefetch : module
    Newest-patch prefetch for fast-moving databases.
staging : module
    Validated commit of staged downloads.
config : package
    YAML configuration loading and merging.
io : package
    Mirror-failover downloads.
state : package
    Missing-patch history.
versioning : package
    Published version lookup and local version probing.

Public API
----------
    from cvdsync.config import load_config
    from cvdsync.core import sync_databases
    from cvdsync.reconciler import UpdateReconciler
    from cvdsync.state import MissingPatchCache, PatchKey
    from cvdsync.io import MirrorFetcher, DownloadOutcome

Project Information
-------------------
Author: Roger Cibrian
License: Apache-2.0
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "ClamAV database mirror synchronizer with incremental patches"

from cvdsync.config import load_config
from cvdsync.core import sync_databases
from cvdsync.io import DownloadOutcome, MirrorFetcher
from cvdsync.reconciler import UpdateReconciler
from cvdsync.state import MissingPatchCache, PatchKey

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "load_config",
    "sync_databases",
    "DownloadOutcome",
    "MirrorFetcher",
    "UpdateReconciler",
    "MissingPatchCache",
    "PatchKey",
]
