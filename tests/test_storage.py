"""
Tests for core/storage.py backends.
"""
import pytest

from returnsdesk.config import Settings
from returnsdesk.core.exceptions import StorageError
from returnsdesk.core.storage import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    create_store,
)


class TestInMemoryStore:
    def test_set_get_remove(self):
        store = InMemoryKeyValueStore()
        store.set("k", {"a": [1, 2]})
        assert store.get("k") == {"a": [1, 2]}
        store.remove("k")
        assert store.get("k") is None

    def test_values_are_copies(self):
        store = InMemoryKeyValueStore()
        value = {"a": 1}
        store.set("k", value)
        value["a"] = 2
        assert store.get("k") == {"a": 1}

    def test_corrupt_value_is_discarded(self):
        store = InMemoryKeyValueStore()
        store.set_raw("k", "{nope")
        assert store.get("k") is None

    def test_unserializable_value_raises_storage_error(self):
        store = InMemoryKeyValueStore()
        value = {}
        value["self"] = value
        with pytest.raises(StorageError):
            store.set("k", value)

    def test_remove_missing_key_is_ignored(self):
        InMemoryKeyValueStore().remove("missing")


class TestFileStore:
    def test_round_trip(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path / "data"))
        store.set("returnsdesk:snapshot", {"version": 3})
        assert store.get("returnsdesk:snapshot") == {"version": 3}

    def test_key_is_sanitized_into_file_name(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path))
        store.set("returnsdesk:annotations", {})
        assert (tmp_path / "returnsdesk_annotations.json").exists()

    def test_missing_key(self, tmp_path):
        assert FileKeyValueStore(str(tmp_path)).get("absent") is None

    def test_corrupt_file_is_removed(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path))
        (tmp_path / "broken.json").write_text("{oops", encoding="utf-8")
        assert store.get("broken") is None
        assert not (tmp_path / "broken.json").exists()

    def test_no_temp_files_left_behind(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path))
        store.set("k", [1])
        store.set("k", [2])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["k.json"]
        assert store.get("k") == [2]

    def test_remove(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path))
        store.set("k", 1)
        store.remove("k")
        store.remove("k")
        assert store.get("k") is None


class TestCreateStore:
    def test_memory_backend(self):
        assert isinstance(create_store(Settings(STORAGE_BACKEND="memory")), InMemoryKeyValueStore)

    def test_file_backend(self, tmp_path):
        store = create_store(Settings(STORAGE_BACKEND="file", STORAGE_PATH=str(tmp_path)))
        assert isinstance(store, FileKeyValueStore)

    def test_redis_backend_is_lazy(self):
        store = create_store(Settings(STORAGE_BACKEND="redis", REDIS_URL="redis://localhost:6399/0"))
        assert isinstance(store, RedisKeyValueStore)

    def test_redis_backend_requires_url(self):
        with pytest.raises(ValueError):
            create_store(Settings(STORAGE_BACKEND="redis", REDIS_URL=None))

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(ValueError):
            Settings(STORAGE_BACKEND="sqlite")
