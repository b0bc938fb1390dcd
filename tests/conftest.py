"""
Pytest configuration and shared fixtures for cvdsync tests.

This module provides reusable fixtures and test doubles used across
the test suite.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
import yaml

from cvdsync.io import MirrorFetcher
from cvdsync.layout import Resource, StorageLayout
from cvdsync.logging import SilentLogger, set_global_logger
from cvdsync.state import MissingPatchCache
from cvdsync.versioning import UNKNOWN_VERSION, VersionRecord

FULL_MIRRORS = ["https://db.example.com", "https://mirror.example.org/clamav"]
PATCH_MIRRORS = ["https://db.example.com", "https://mirror.example.org/clamav"]

# 2000-01-01T00:00:00Z, well before anything a test downloads.
OLD_MTIME = 946684800


class FakeProbe:
    """Version probe answering from a dict keyed by database name."""

    def __init__(self, versions: dict[str, int] | None = None) -> None:
        self.versions = versions or {}
        self.calls: list[Path] = []

    def probe(self, path: Path) -> int:
        self.calls.append(path)
        return self.versions.get(path.stem, UNKNOWN_VERSION)


class FakeOracle:
    """Version oracle returning a fixed record, or raising a given error."""

    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls = 0

    def lookup(self) -> VersionRecord:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return VersionRecord.parse(self.text)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's environment out of config resolution."""
    monkeypatch.delenv("CVDSYNC_CONFIG", raising=False)
    monkeypatch.delenv("CVDSYNC_DATABASE_DIR", raising=False)


@pytest.fixture(autouse=True)
def _silent_logger():
    """Reset the global logger after CLI tests replace it."""
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def layout(tmp_test_dir: Path) -> StorageLayout:
    """Database directory layout with the staging directory created."""
    result = StorageLayout(base_dir=tmp_test_dir / "clamav")
    result.ensure_dirs()
    return result


@pytest.fixture
def cache(layout: StorageLayout) -> MissingPatchCache:
    """Loaded (empty) missing-patch history for the test layout."""
    result = MissingPatchCache(layout.history_path)
    result.load()
    return result


@pytest.fixture
def fetcher():
    """Mirror fetcher over the example mirrors."""
    with MirrorFetcher(FULL_MIRRORS, PATCH_MIRRORS, timeout=5) as result:
        yield result


@pytest.fixture
def write_live(layout: StorageLayout):
    """
    Factory fixture for creating live database files with an old mtime.

    Usage:
        path = write_live("daily", b"old contents")
    """

    def _write(name: str, data: bytes, mtime: float = OLD_MTIME) -> Path:
        path = layout.full_path(name)
        path.write_bytes(data)
        os.utime(path, (mtime, mtime))
        return path

    return _write


@pytest.fixture
def make_resource(layout: StorageLayout):
    """Factory fixture for Resource objects in the test layout."""

    def _make(
        name: str, local_version: int | None, target_version: int, fast_moving: bool = False
    ) -> Resource:
        return Resource(
            name=name,
            local_path=layout.full_path(name),
            local_version=local_version,
            target_version=target_version,
            fast_moving=fast_moving,
        )

    return _make


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("cvdsync.yaml", {"timeout": 10})
    """

    def _create(filename: str, data: Any) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


def full_url(name: str, mirror: int = 0) -> str:
    return f"{FULL_MIRRORS[mirror]}/{name}.cvd"


def patch_url(name: str, version: int, mirror: int = 0) -> str:
    return f"{PATCH_MIRRORS[mirror]}/{name}-{version}.cdiff"
