"""
Tests for cvdsync.core module.

Tests the end-to-end sync run including:
- Version lookup aborting before any disk change
- Per-database reconciliation in configured order
- Prefetch of the newest patch for fast-moving databases
- Skipping fast-moving databases on request
"""

from __future__ import annotations

import dataclasses
import os

from conftest import (
    FULL_MIRRORS,
    OLD_MTIME,
    PATCH_MIRRORS,
    FakeOracle,
    FakeProbe,
    full_url,
    patch_url,
)
import pytest
import requests_mock

from cvdsync.config import load_config
from cvdsync.core import build_resource, sync_databases
from cvdsync.exceptions import OracleError
from cvdsync.layout import StorageLayout
from cvdsync.state import PatchKey
from cvdsync.versioning import UNKNOWN_VERSION

RECORD = "0.103.12:62:102:1729072140:1:90:49192:334"


@pytest.fixture
def config(tmp_test_dir):
    cfg = load_config(database_dir=tmp_test_dir / "clamav")
    cfg["mirrors"] = {"full": list(FULL_MIRRORS), "patch": list(PATCH_MIRRORS)}
    return cfg


@pytest.fixture
def db_dir(config):
    layout = StorageLayout.from_config(config)
    layout.base_dir.mkdir(parents=True, exist_ok=True)
    return layout


def _live(layout, name, data=b"db"):
    path = layout.full_path(name)
    path.write_bytes(data)
    os.utime(path, (OLD_MTIME, OLD_MTIME))
    return path


class TestSyncDatabases:
    """Tests for sync_databases()."""

    def test_full_run(self, config, db_dir):
        """Test one run covering up-to-date, patched and absent databases."""
        _live(db_dir, "main")
        _live(db_dir, "daily")
        probe = FakeProbe({"main": 62, "daily": 100})

        with requests_mock.Mocker() as m:
            m.get(patch_url("daily", 101), content=b"p101")
            m.get(patch_url("daily", 102), content=b"p102")
            m.get(full_url("bytecode"), content=b"bytecode db")
            result = sync_databases(config, oracle=FakeOracle(RECORD), probe=probe)

        assert result.status == "success"
        assert result.record == RECORD
        assert [(r.name, r.action) for r in result.results] == [
            ("main", "up_to_date"),
            ("daily", "patched"),
            ("bytecode", "replaced"),
        ]
        assert result.results[2].target_version == 334
        assert result.prefetched == {"daily": "present"}
        assert db_dir.record_path.read_text(encoding="utf-8") == RECORD
        assert db_dir.full_path("bytecode").read_bytes() == b"bytecode db"
        assert db_dir.patch_path(PatchKey("daily", 102)).exists()

    def test_prefetch_after_up_to_date(self, config, db_dir):
        """Test that the newest patch is fetched even when daily is current."""
        for name in ("main", "daily", "bytecode"):
            _live(db_dir, name)
        probe = FakeProbe({"main": 62, "daily": 102, "bytecode": 334})

        with requests_mock.Mocker() as m:
            route = m.get(patch_url("daily", 102), content=b"p102")
            result = sync_databases(config, oracle=FakeOracle(RECORD), probe=probe)

        assert [r.action for r in result.results] == ["up_to_date"] * 3
        assert result.prefetched == {"daily": "success"}
        assert route.call_count == 1

    def test_skip_fast_moving(self, config, db_dir):
        """Test that skipped databases are neither reconciled nor prefetched."""
        _live(db_dir, "main")
        _live(db_dir, "bytecode")
        probe = FakeProbe({"main": 62, "bytecode": 334})

        with requests_mock.Mocker() as m:
            result = sync_databases(
                config, skip_fast_moving=True, oracle=FakeOracle(RECORD), probe=probe
            )

        assert [r.name for r in result.results] == ["main", "bytecode"]
        assert result.skipped == ["daily"]
        assert result.prefetched == {}
        assert m.call_count == 0
        assert not db_dir.full_path("daily").exists()

    def test_oracle_failure_aborts_before_disk(self, config, tmp_test_dir):
        """Test that a failed lookup raises and leaves the directory alone."""
        oracle = FakeOracle(error=OracleError("Unable to get TXT record"))

        with pytest.raises(OracleError):
            sync_databases(config, oracle=oracle, probe=FakeProbe())

        assert not (tmp_test_dir / "clamav").exists()

    def test_short_record_aborts_before_disk(self, config, tmp_test_dir):
        """Test that a record without a configured field aborts the run."""
        with pytest.raises(OracleError):
            sync_databases(config, oracle=FakeOracle("0.103.12:62:102"), probe=FakeProbe())

        assert not (tmp_test_dir / "clamav").exists()

    def test_failure_does_not_stop_later_databases(self, config, db_dir):
        """Test that one database failing leaves the others to run."""
        _live(db_dir, "daily")
        _live(db_dir, "bytecode")
        probe = FakeProbe({"daily": 102, "bytecode": 334})

        with requests_mock.Mocker() as m:
            m.get(full_url("main", 0), status_code=500)
            m.get(full_url("main", 1), status_code=503)
            m.get(patch_url("daily", 102), content=b"p102")
            result = sync_databases(config, oracle=FakeOracle(RECORD), probe=probe)

        assert [(r.name, r.action) for r in result.results] == [
            ("main", "failed"),
            ("daily", "up_to_date"),
            ("bytecode", "up_to_date"),
        ]
        assert result.status == "success"

    def test_probe_error_does_not_stop_later_databases(self, config, db_dir):
        """Test that a probe blowing up fails only its own database."""
        _live(db_dir, "main")
        _live(db_dir, "bytecode")
        config["databases"] = [
            {"name": "main", "field": 1},
            {"name": "bytecode", "field": 7},
        ]

        class _ExplodingProbe(FakeProbe):
            def probe(self, path):
                if path.stem == "main":
                    raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
                return super().probe(path)

        probe = _ExplodingProbe({"bytecode": 334})

        with requests_mock.Mocker() as m:
            result = sync_databases(config, oracle=FakeOracle(RECORD), probe=probe)

        assert [(r.name, r.action) for r in result.results] == [
            ("main", "failed"),
            ("bytecode", "up_to_date"),
        ]
        assert "invalid start byte" in result.results[0].error
        assert result.results[0].target_version == 62
        assert m.call_count == 0

    def test_result_is_frozen(self, config, db_dir):
        """Test that the returned SyncResult can't be reassigned."""
        for name in ("main", "daily", "bytecode"):
            _live(db_dir, name)
        probe = FakeProbe({"main": 62, "daily": 102, "bytecode": 334})

        with requests_mock.Mocker() as m:
            m.get(patch_url("daily", 102), content=b"p102")
            result = sync_databases(config, oracle=FakeOracle(RECORD), probe=probe)

        with pytest.raises(dataclasses.FrozenInstanceError):
            result.status = "changed"

    def test_history_is_shared_across_run(self, config, db_dir):
        """Test that a known-missing patch from a previous run isn't requested."""
        db_dir.history_path.write_text("daily:101\n", encoding="utf-8")
        for name in ("main", "daily", "bytecode"):
            _live(db_dir, name)
        probe = FakeProbe({"main": 62, "daily": 100, "bytecode": 334})

        with requests_mock.Mocker() as m:
            m.get(patch_url("daily", 102), content=b"p102")
            m.get(full_url("daily"), status_code=304)
            result = sync_databases(config, oracle=FakeOracle(RECORD), probe=probe)
            requested = [r.url for r in m.request_history]

        assert not any("daily-101" in url for url in requested)
        assert result.results[1].missing_patches == (101,)
        assert result.results[1].action == "not_modified"


class TestBuildResource:
    """Tests for build_resource()."""

    def test_absent_file(self, layout):
        """Test that a missing file has no local version and isn't probed."""
        probe = FakeProbe({"main": 62})

        resource = build_resource("main", 62, layout, probe)

        assert resource.local_version is None
        assert probe.calls == []

    def test_empty_file_is_not_probed(self, layout):
        """Test that an empty file is unknown without running the probe."""
        layout.full_path("main").write_bytes(b"")
        probe = FakeProbe({"main": 62})

        resource = build_resource("main", 62, layout, probe)

        assert resource.local_version == UNKNOWN_VERSION
        assert probe.calls == []

    def test_probed_version(self, layout):
        """Test that a present file takes the probed version."""
        layout.full_path("daily").write_bytes(b"db")
        probe = FakeProbe({"daily": 27000})

        resource = build_resource("daily", 27001, layout, probe, fast_moving=True)

        assert resource.local_version == 27000
        assert resource.target_version == 27001
        assert resource.fast_moving is True
        assert probe.calls == [layout.full_path("daily")]
