"""Tests for the SQLite folder state store."""

import os

import pytest

from resultsink.errors import StateStoreError
from workflows import FolderStateStore


def test_empty_store(state):
    assert state.load_all() == {}
    assert state.get("202403") is None


def test_put_get_delete(state):
    state.put("202403", "id-1")
    assert state.get("202403") == "id-1"

    state.put("202403", "id-2")
    assert state.load_all() == {"202403": "id-2"}

    state.delete("202403")
    assert state.get("202403") is None


def test_delete_missing_is_noop(state):
    state.delete("nothing")
    assert state.load_all() == {}


def test_persists_across_connections(temp_dir):
    path = os.path.join(temp_dir, "nested", "folders.db")
    first = FolderStateStore(path)
    first.put("202401", "a")
    first.put("202402", "b")
    first.close()

    second = FolderStateStore(path)
    try:
        assert second.load_all() == {"202401": "a", "202402": "b"}
    finally:
        second.close()


def test_empty_rows_are_skipped(state):
    state.conn.execute("INSERT INTO folders (name, remote_id) VALUES ('', 'x')")
    state.conn.execute("INSERT INTO folders (name, remote_id) VALUES ('202401', '')")
    state.conn.commit()
    assert state.load_all() == {}
    assert state.get("202401") is None


def test_unopenable_path_raises(temp_dir):
    blocker = os.path.join(temp_dir, "file")
    with open(blocker, "w") as f:
        f.write("x")
    with pytest.raises(StateStoreError):
        FolderStateStore(os.path.join(blocker, "folders.db"))


def test_closed_store_raises_state_error(temp_dir):
    store = FolderStateStore(os.path.join(temp_dir, "folders.db"))
    store.close()
    with pytest.raises(StateStoreError):
        store.put("202401", "a")
