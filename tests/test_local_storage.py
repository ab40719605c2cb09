"""Tests for the directory-backed local storage."""

from pathlib import Path

import pytest

from domain.errors import PersistenceError
from domain.local_storage import LocalStorage


def test_missing_key_returns_none(storage: LocalStorage):
    assert storage.get_item("knowledge_queries") is None


def test_set_then_get(tmp_path: Path):
    storage = LocalStorage(tmp_path)
    storage.set_item("api_settings", '{"queryModel": "m"}')
    assert storage.get_item("api_settings") == '{"queryModel": "m"}'
    assert (tmp_path / "api_settings.json").exists()
    assert not (tmp_path / "api_settings.json.tmp").exists()


def test_set_replaces_whole_value(storage: LocalStorage):
    storage.set_item("k", "first value that is long")
    storage.set_item("k", "2")
    assert storage.get_item("k") == "2"


def test_remove_item(storage: LocalStorage):
    storage.set_item("k", "v")
    storage.remove_item("k")
    storage.remove_item("k")
    assert storage.get_item("k") is None


def test_rejects_path_like_keys(storage: LocalStorage):
    with pytest.raises(ValueError):
        storage.get_item("../escape")


def test_write_failure_raises_persistence_error(tmp_path: Path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file in the way", encoding="utf-8")
    storage = LocalStorage(blocker)

    with pytest.raises(PersistenceError) as excinfo:
        storage.set_item("knowledge_queries", "[]")
    assert excinfo.value.key == "knowledge_queries"


def test_failed_replace_removes_temp_file(tmp_path: Path, monkeypatch):
    storage = LocalStorage(tmp_path)
    storage.set_item("knowledge_queries", "[]")

    def refuse(src, dst):
        raise PermissionError("target locked")

    monkeypatch.setattr("domain.local_storage.os.replace", refuse)

    with pytest.raises(PersistenceError):
        storage.set_item("knowledge_queries", '[{"timestamp": "t"}]')
    assert not (tmp_path / "knowledge_queries.json.tmp").exists()
    assert storage.get_item("knowledge_queries") == "[]"
