"""Unit tests for state file persistence."""

from __future__ import annotations

import json

import pytest

from core.errors import MemstorePersistenceError
from store.state_io import read_state_file, write_state_file


def test_read_state_file_missing_is_empty(tmp_path) -> None:
    """An absent file should load as an empty store."""
    ids, models = read_state_file(tmp_path / "db.json")

    assert ids == {}
    assert models == {}


def test_write_then_read_state_file(tmp_path) -> None:
    """Written state should read back with the same layout."""
    state_path = tmp_path / "nested" / "db.json"
    payload = {"ids": {"User": 2}, "models": {"User": {"1": '{"name": "Ann", "id": 1}'}}}

    write_state_file(state_path, payload)
    ids, models = read_state_file(state_path)

    assert ids == {"User": 2}
    assert models == {"User": {"1": '{"name": "Ann", "id": 1}'}}


def test_write_state_file_is_indented_and_leaves_no_temp_file(tmp_path) -> None:
    """Writes should be two-space indented and swapped into place."""
    state_path = tmp_path / "db.json"

    write_state_file(state_path, {"ids": {}, "models": {}})

    assert state_path.read_text(encoding="utf-8") == '{\n  "ids": {},\n  "models": {}\n}\n'
    assert not (tmp_path / "db.json.tmp").exists()


def test_read_state_file_rejects_malformed_json(tmp_path) -> None:
    """Corrupt files should raise a persistence error."""
    state_path = tmp_path / "db.json"
    state_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(MemstorePersistenceError, match="Failed to parse"):
        read_state_file(state_path)


def test_read_state_file_rejects_non_integer_counters(tmp_path) -> None:
    """Sequence counters must be integers."""
    state_path = tmp_path / "db.json"
    state_path.write_text(json.dumps({"ids": {"User": "many"}, "models": {}}), encoding="utf-8")

    with pytest.raises(MemstorePersistenceError, match="counters"):
        read_state_file(state_path)


def test_write_state_file_raises_when_parent_is_a_file(tmp_path) -> None:
    """Unwritable destinations should raise a persistence error."""
    blocker = tmp_path / "data"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(MemstorePersistenceError):
        write_state_file(blocker / "db.json", {"ids": {}, "models": {}})
