"""Tests for store.py - the persisted seen-set."""

import json
import os
from pathlib import Path

import pytest

from mail_telegram_agent.exceptions import PersistenceError, StoreLoadError
from mail_telegram_agent.store import MAX_ENTRIES, SeenStore


class TestLoad:

    def test_missing_file_creates_empty_store(self, tmp_path: Path):
        path = tmp_path / "store.json"
        store = SeenStore.load(str(path))

        assert len(store) == 0
        assert json.loads(path.read_text(encoding="utf-8")) == {"processedUids": []}

    def test_loads_numeric_and_string_ids(self, tmp_path: Path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"processedUids": [12, "fallback-1-0.5"]}), encoding="utf-8")

        store = SeenStore.load(str(path))

        assert store.contains("12")
        assert store.contains("fallback-1-0.5")
        assert store.uids == ("12", "fallback-1-0.5")

    def test_corrupt_file_is_fatal(self, tmp_path: Path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreLoadError):
            SeenStore.load(str(path))

    def test_wrong_shape_is_fatal(self, tmp_path: Path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"processedUids": "12"}), encoding="utf-8")
        with pytest.raises(StoreLoadError, match="not a list"):
            SeenStore.load(str(path))

    def test_document_without_key_is_empty(self, tmp_path: Path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"lastEmailUid": None}), encoding="utf-8")
        assert len(SeenStore.load(str(path))) == 0


class TestMarkSeen:

    def test_persists_before_returning(self, tmp_path: Path):
        path = tmp_path / "store.json"
        store = SeenStore.load(str(path))

        store.mark_seen("41")
        store.mark_seen("fallback-99-0.1")

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload == {"processedUids": [41, "fallback-99-0.1"]}
        assert SeenStore.load(str(path)).uids == ("41", "fallback-99-0.1")

    def test_non_ascii_digits_are_kept_as_strings(self, tmp_path: Path):
        path = tmp_path / "store.json"
        store = SeenStore.load(str(path))

        store.mark_seen("²")

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload == {"processedUids": ["²"]}
        assert SeenStore.load(str(path)).contains("²")

    def test_marking_twice_keeps_one_entry(self, tmp_path: Path):
        store = SeenStore.load(str(tmp_path / "store.json"))
        store.mark_seen("7")
        store.mark_seen("7")
        assert store.uids == ("7",)

    def test_cap_keeps_most_recent_in_order(self, tmp_path: Path):
        path = tmp_path / "store.json"
        store = SeenStore.load(str(path))

        for uid in range(MAX_ENTRIES + 25):
            store.mark_seen(str(uid))
            assert len(store) <= MAX_ENTRIES

        expected = tuple(str(uid) for uid in range(25, MAX_ENTRIES + 25))
        assert store.uids == expected
        assert not store.contains("24")
        assert store.contains("25")
        assert SeenStore.load(str(path)).uids == expected

    def test_small_cap(self, tmp_path: Path):
        store = SeenStore(str(tmp_path / "store.json"), max_entries=3)
        for uid in ["a", "b", "c", "d", "e"]:
            store.mark_seen(uid)
        assert store.uids == ("c", "d", "e")
        assert "a" not in store

    def test_write_failure_raises_persistence_error(self, tmp_path: Path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        store = SeenStore(str(blocker / "store.json"))

        with pytest.raises(PersistenceError):
            store.mark_seen("1")
        # Still known in memory for the rest of this run
        assert store.contains("1")

    def test_no_temp_files_left_behind(self, tmp_path: Path):
        store = SeenStore.load(str(tmp_path / "store.json"))
        store.mark_seen("1")
        assert os.listdir(tmp_path) == ["store.json"]


def test_clear_empties_store(tmp_path: Path):
    path = tmp_path / "store.json"
    store = SeenStore.load(str(path))
    store.mark_seen("1")

    store.clear()

    assert len(store) == 0
    assert json.loads(path.read_text(encoding="utf-8")) == {"processedUids": []}
