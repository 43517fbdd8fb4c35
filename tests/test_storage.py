import json
import os

import pytest

from assistant_hub.storage.file_storage import FileStorage


def test_insert_find_update_delete(storage):
    record = storage.insert("threads", {"thread_id": "t1", "assistant_id": "a1", "user_id": "u1"}, doc_id="t1")

    assert record["id"] == "t1"
    assert storage.find_thread("t1", "a1", "u1")["thread_id"] == "t1"
    assert storage.find_thread("t1", "a1", "someone-else") is None

    updated = storage.update("threads", "t1", title="renamed")
    assert updated["title"] == "renamed"
    assert "updated_at" in updated

    assert storage.delete("threads", "t1") is True
    assert storage.delete("threads", "t1") is False
    assert storage.update("threads", "t1", title="x") is None


def test_returned_documents_are_copies(storage):
    record = storage.insert("users", {"email": "a@b.c", "tags": []})
    record["tags"].append("mutated")

    assert storage.get("users", record["id"])["tags"] == []


def test_unknown_collection(storage):
    with pytest.raises(KeyError):
        storage.insert("nope", {})


def test_increment(storage):
    user = storage.insert("users", {"email": "a@b.c"})
    storage.increment("users", user["id"], "currentusertokens", 5)
    storage.increment("users", user["id"], "currentusertokens", 7)

    assert storage.get("users", user["id"])["currentusertokens"] == 12
    assert storage.increment("users", "missing", "currentusertokens", 1) is None


def test_deleted_assistants_are_hidden(storage):
    storage.insert("assistants", {"assistant_id": "a1", "is_deleted": True}, doc_id="a1")
    storage.insert("assistants", {"assistant_id": "a2", "is_deleted": False}, doc_id="a2")

    assert storage.get_assistant("a1") is None
    assert storage.get_assistant("a2")["id"] == "a2"


def test_persists_and_reloads(tmp_path):
    data_dir = str(tmp_path / "store")
    first = FileStorage(data_dir, "store.json")
    first.insert("function_definitions", {"name": "f", "definition": "def f():\n    return 1\n"})
    first.insert("users", {"email": "x@y.z"})

    second = FileStorage(data_dir, "store.json")

    assert second.find_one("function_definitions", name="f") is not None
    assert os.path.exists(os.path.join(data_dir, "store.json.bak"))


def test_corrupt_file_starts_empty(tmp_path):
    data_dir = tmp_path / "store"
    data_dir.mkdir()
    (data_dir / "store.json").write_text("{not json")

    storage = FileStorage(str(data_dir), "store.json")

    assert storage.find("users") == []
    storage.insert("users", {"email": "a@b.c"})
    assert json.loads((data_dir / "store.json").read_text())["users"]
