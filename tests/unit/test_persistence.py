"""
test_persistence.py - Unit tests for SnapshotStore
"""

import json
from unittest import mock

import pytest

from clicker import SnapshotStore, SNAPSHOT_FORMAT, PersistenceFailure


class TestSnapshotStore:

    def test_missing_file_loads_none(self, tmp_path):
        store = SnapshotStore(tmp_path / "phone.json")
        assert not store.exists()
        assert store.load() is None

    def test_round_trip(self, tmp_path):
        store = SnapshotStore(tmp_path / "phone.json")
        store.save({'ledger': {'total_ever_earned': "150"}})
        data = store.load()
        assert data['format'] == SNAPSHOT_FORMAT
        assert data['ledger'] == {'total_ever_earned': "150"}

    def test_creates_parent_directory(self, tmp_path):
        store = SnapshotStore(tmp_path / "nested" / "dir" / "watch.json")
        store.save({})
        assert store.exists()

    def test_no_temp_files_left(self, tmp_path):
        store = SnapshotStore(tmp_path / "phone.json")
        store.save({'a': 1})
        store.save({'a': 2})
        assert [p.name for p in tmp_path.iterdir()] == ["phone.json"]

    def test_corrupt_json(self, tmp_path):
        path = tmp_path / "phone.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceFailure):
            SnapshotStore(path).load()

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "phone.json"
        path.write_text("[1, 2]")
        with pytest.raises(PersistenceFailure):
            SnapshotStore(path).load()

    def test_wrong_format(self, tmp_path):
        path = tmp_path / "phone.json"
        path.write_text(json.dumps({'format': 99}))
        with pytest.raises(PersistenceFailure, match="format"):
            SnapshotStore(path).load()

    def test_failed_write_keeps_previous_snapshot(self, tmp_path):
        store = SnapshotStore(tmp_path / "phone.json")
        store.save({'generation': 1})
        with mock.patch("clicker.persistence.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceFailure):
                store.save({'generation': 2})
        assert store.load()['generation'] == 1
        assert [p.name for p in tmp_path.iterdir()] == ["phone.json"]

    def test_unserializable_document(self, tmp_path):
        store = SnapshotStore(tmp_path / "phone.json")
        with pytest.raises(PersistenceFailure):
            store.save({'bad': object()})
        assert not store.exists()

    def test_delete(self, tmp_path):
        store = SnapshotStore(tmp_path / "phone.json")
        store.save({})
        store.delete()
        store.delete()
        assert not store.exists()
