"""
Tests for cvdsync.state.history module.

Tests the missing-patch history including:
- Loading (comments, blank lines, whitespace, malformed lines)
- Persistence on mark_missing (sorted, durable, reloadable)
- Atomic rewrite (failed writes keep the previous history)
"""

from __future__ import annotations

from pathlib import Path

import pytest

from cvdsync.state import MissingPatchCache, PatchKey


class TestPatchKey:
    """Tests for PatchKey parsing and formatting."""

    def test_str_is_history_record(self):
        """Test that str() gives the name:version record."""
        assert str(PatchKey("daily", 27001)) == "daily:27001"

    def test_parse_round_trip(self):
        """Test parsing a record back into a key."""
        assert PatchKey.parse("daily:27001") == PatchKey("daily", 27001)

    @pytest.mark.parametrize("record", ["daily", ":12", "daily:abc", "daily:"])
    def test_parse_rejects_malformed(self, record):
        """Test that malformed records raise ValueError."""
        with pytest.raises(ValueError):
            PatchKey.parse(record)


class TestLoad:
    """Tests for MissingPatchCache.load()."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test that a missing history file loads as an empty set."""
        cache = MissingPatchCache(tmp_path / "cdiff_history.txt")

        assert cache.load() == set()
        assert len(cache) == 0
        assert not (tmp_path / "cdiff_history.txt").exists()

    def test_skips_comments_and_blank_lines(self, tmp_path):
        """Test that # comments and blank lines are ignored and whitespace trimmed."""
        history = tmp_path / "cdiff_history.txt"
        history.write_text(
            "# known missing\n\n   daily:205  \n\t\nbytecode:330\n  # indented comment\n",
            encoding="utf-8",
        )
        cache = MissingPatchCache(history)

        keys = cache.load()

        assert keys == {PatchKey("daily", 205), PatchKey("bytecode", 330)}

    def test_skips_malformed_lines(self, tmp_path):
        """Test that unparseable lines are skipped, valid ones kept."""
        history = tmp_path / "cdiff_history.txt"
        history.write_text("daily:205\ngarbage\ndaily:x\n", encoding="utf-8")
        cache = MissingPatchCache(history)

        assert cache.load() == {PatchKey("daily", 205)}

    def test_skips_lines_with_invalid_utf8(self, tmp_path):
        """Test that undecodable bytes only cost the line they appear on."""
        history = tmp_path / "cdiff_history.txt"
        history.write_bytes(b"daily:205\n\xff\xfegarbage\nda\xffily:300\ndaily:206\n")
        cache = MissingPatchCache(history)

        assert cache.load() == {PatchKey("daily", 205), PatchKey("daily", 206)}

    def test_load_twice_keeps_in_memory_entries(self, tmp_path):
        """Test that reloading never drops keys recorded in memory."""
        history = tmp_path / "cdiff_history.txt"
        history.write_text("daily:1\n", encoding="utf-8")
        cache = MissingPatchCache(history)
        cache.load()
        cache._keys.add(PatchKey("daily", 2))

        cache.load()

        assert cache.contains(PatchKey("daily", 1))
        assert cache.contains(PatchKey("daily", 2))


class TestMarkMissing:
    """Tests for MissingPatchCache.mark_missing() and flush()."""

    def test_contains_after_mark(self, tmp_path):
        """Test that a marked key is contained for the rest of the run."""
        cache = MissingPatchCache(tmp_path / "cdiff_history.txt")
        cache.load()
        key = PatchKey("daily", 102)

        cache.mark_missing(key)

        assert cache.contains(key)
        assert key in cache

    def test_mark_persists_immediately(self, tmp_path):
        """Test that a fresh instance sees a mark after reload."""
        history = tmp_path / "cdiff_history.txt"
        cache = MissingPatchCache(history)
        cache.load()

        cache.mark_missing(PatchKey("daily", 102))

        reloaded = MissingPatchCache(history)
        reloaded.load()
        assert reloaded.contains(PatchKey("daily", 102))

    def test_written_sorted_lexicographically(self, tmp_path):
        """Test that records are sorted as strings, one per line."""
        history = tmp_path / "cdiff_history.txt"
        cache = MissingPatchCache(history)
        cache.load()

        cache.mark_missing(PatchKey("daily", 999))
        cache.mark_missing(PatchKey("daily", 1000))
        cache.mark_missing(PatchKey("bytecode", 5))

        assert history.read_text(encoding="utf-8") == (
            "bytecode:5\ndaily:1000\ndaily:999\n"
        )

    def test_mark_keeps_existing_entries(self, tmp_path):
        """Test that marking rewrites the file with old and new entries."""
        history = tmp_path / "cdiff_history.txt"
        history.write_text("# header\ndaily:205\n", encoding="utf-8")
        cache = MissingPatchCache(history)
        cache.load()

        cache.mark_missing(PatchKey("daily", 206))

        assert history.read_text(encoding="utf-8") == "daily:205\ndaily:206\n"

    def test_duplicate_mark_is_noop(self, tmp_path):
        """Test that marking the same key twice stores it once."""
        history = tmp_path / "cdiff_history.txt"
        cache = MissingPatchCache(history)
        cache.load()

        cache.mark_missing(PatchKey("daily", 7))
        cache.mark_missing(PatchKey("daily", 7))

        assert len(cache) == 1
        assert history.read_text(encoding="utf-8") == "daily:7\n"

    def test_creates_parent_directory(self, tmp_path):
        """Test that flush creates the history directory if needed."""
        history = tmp_path / "nested" / "cdiff_history.txt"
        cache = MissingPatchCache(history)

        cache.mark_missing(PatchKey("main", 60))

        assert history.exists()

    def test_no_temporary_files_left(self, tmp_path):
        """Test that the atomic rewrite leaves only the history file."""
        history = tmp_path / "cdiff_history.txt"
        cache = MissingPatchCache(history)

        cache.mark_missing(PatchKey("daily", 1))
        cache.mark_missing(PatchKey("daily", 2))

        assert [p.name for p in tmp_path.iterdir()] == ["cdiff_history.txt"]

    def test_failed_write_keeps_previous_history(self, tmp_path, monkeypatch):
        """Test that a failed rename neither truncates the file nor loses the key."""
        history = tmp_path / "cdiff_history.txt"
        history.write_text("daily:205\n", encoding="utf-8")
        cache = MissingPatchCache(history)
        cache.load()

        def _boom(self, target):
            raise OSError("disk full")

        monkeypatch.setattr(Path, "replace", _boom)

        cache.mark_missing(PatchKey("daily", 206))

        monkeypatch.undo()
        assert history.read_text(encoding="utf-8") == "daily:205\n"
        assert cache.contains(PatchKey("daily", 206))
        assert [p.name for p in tmp_path.iterdir()] == ["cdiff_history.txt"]

    def test_flush_raises_on_failure(self, tmp_path, monkeypatch):
        """Test that flush() itself propagates write errors."""
        cache = MissingPatchCache(tmp_path / "cdiff_history.txt")

        def _boom(self, target):
            raise OSError("read-only filesystem")

        monkeypatch.setattr(Path, "replace", _boom)

        with pytest.raises(OSError, match="read-only"):
            cache.flush()

    def test_iter_is_sorted(self, tmp_path):
        """Test that iterating yields keys in history-file order."""
        cache = MissingPatchCache(tmp_path / "cdiff_history.txt")
        cache.mark_missing(PatchKey("main", 2))
        cache.mark_missing(PatchKey("daily", 3))

        assert [str(k) for k in cache] == ["daily:3", "main:2"]
