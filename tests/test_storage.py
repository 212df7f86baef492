import json

import pytest

from matchday.core.storage import (
    JsonFileStorage,
    MemoryStorage,
    RedisStorage,
    StorageQuotaExceeded,
    build_storage,
)
from matchday.sync.cache import PersistentCache

fakeredis = pytest.importorskip("fakeredis")


@pytest.fixture
def redis_storage(redis_url):
    if redis_url:
        storage = RedisStorage.from_url(redis_url, namespace="matchday:test")
    else:
        storage = RedisStorage(fakeredis.FakeRedis(decode_responses=True), namespace="matchday:test")
    try:
        yield storage
    finally:
        for key in storage.keys():
            storage.remove_item(key)
        storage.close()


def test_memory_storage_quota() -> None:
    storage = MemoryStorage(quota_bytes=10)
    storage.set_item("a", "12345")
    with pytest.raises(StorageQuotaExceeded):
        storage.set_item("b", "123456")
    # Replacing a key only counts the new value.
    storage.set_item("a", "123456789")
    assert storage.get_item("a") == "123456789"


def test_file_storage_roundtrip_survives_reopen(tmp_path) -> None:
    path = tmp_path / "cache.json"
    storage = JsonFileStorage(path)
    storage.set_item("k", json.dumps({"v": 1}))
    storage.set_item("other", "x")
    storage.remove_item("other")

    reopened = JsonFileStorage(path)
    assert reopened.get_item("k") == json.dumps({"v": 1})
    assert reopened.keys() == ["k"]
    assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]


def test_file_storage_ignores_unreadable_file(tmp_path) -> None:
    path = tmp_path / "cache.json"
    path.write_text("{truncated", encoding="utf-8")

    storage = JsonFileStorage(path)
    assert storage.get_item("k") is None
    storage.set_item("k", "v")
    assert JsonFileStorage(path).get_item("k") == "v"


def test_file_storage_failed_write_keeps_previous_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "cache.json"
    storage = JsonFileStorage(path)
    storage.set_item("k", "old")

    def boom(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("matchday.core.storage.os.replace", boom)
    with pytest.raises(OSError):
        storage.set_item("k", "new")

    assert json.loads(path.read_text(encoding="utf-8")) == {"k": "old"}
    assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]


def test_cache_over_file_storage(tmp_path, scheduler, clock) -> None:
    path = tmp_path / "cache.json"
    cache = PersistentCache(JsonFileStorage(path), scheduler, clock=clock)
    cache.put("mlfc_open_matches_cache_v2:S1", {"matches": []})
    cache.close()

    fresh = PersistentCache(JsonFileStorage(path), scheduler, clock=clock)
    assert fresh.get_entry("mlfc_open_matches_cache_v2:S1").timestamp == clock.now_ms()


def test_redis_storage_roundtrip(redis_storage) -> None:
    assert redis_storage.get_item("k") is None
    redis_storage.set_item("k", "v")
    redis_storage.set_item("p:1", "a")

    assert redis_storage.get_item("k") == "v"
    assert sorted(redis_storage.keys()) == ["k", "p:1"]

    redis_storage.remove_item("k")
    assert redis_storage.get_item("k") is None


def test_redis_storage_is_namespaced() -> None:
    client = fakeredis.FakeRedis(decode_responses=True)
    first = RedisStorage(client, namespace="profile-a")
    second = RedisStorage(client, namespace="profile-b")

    first.set_item("k", "a")
    assert second.get_item("k") is None
    assert client.get("profile-a:k") == "a"


def test_cache_over_redis_storage(redis_storage, scheduler, clock) -> None:
    cache = PersistentCache(redis_storage, scheduler, clock=clock)
    cache.set("k", {"v": 1})
    scheduler.run_pending()

    assert json.loads(redis_storage.get_item("k")) == {"v": 1}


def test_build_storage_picks_backend(tmp_path, test_settings) -> None:
    import dataclasses

    memory = build_storage(dataclasses.replace(test_settings, storage_backend="memory"))
    file_backed = build_storage(
        dataclasses.replace(test_settings, storage_backend="file", cache_file=tmp_path / "c.json")
    )

    assert isinstance(memory, MemoryStorage)
    assert isinstance(file_backed, JsonFileStorage)
    assert file_backed.path == tmp_path / "c.json"
