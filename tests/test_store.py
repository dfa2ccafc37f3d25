import json

import pytest

from relay.core.store import JsonFileStore, MemoryStore


def test_load_missing_file_is_empty(tmp_path):
    store = JsonFileStore(tmp_path / "line_users.json")
    assert store.load() == {}
    assert not store.path.exists()


def test_save_overwrites_and_pretty_prints(tmp_path):
    path = tmp_path / "line_users.json"
    store = JsonFileStore(path)
    store.save({"_unlinked": ["U1", "U2"]})
    store.save({"a@x.com": "U1"})

    raw = path.read_text(encoding="utf-8")
    assert json.loads(raw) == {"a@x.com": "U1"}
    assert raw == json.dumps({"a@x.com": "U1"}, indent=2)
    assert [p.name for p in tmp_path.iterdir()] == ["line_users.json"]


def test_save_creates_parent_directory(tmp_path):
    store = JsonFileStore(tmp_path / "data" / "users.json")
    store.save({"a@x.com": "U1"})
    assert store.load() == {"a@x.com": "U1"}


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "line_users.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        JsonFileStore(path).load()


def test_memory_store_isolates_callers():
    store = MemoryStore({"_unlinked": ["U1"]})
    data = store.load()
    data["_unlinked"].append("U2")
    assert store.load() == {"_unlinked": ["U1"]}

    store.save(data)
    data["_unlinked"].clear()
    assert store.load() == {"_unlinked": ["U1", "U2"]}
