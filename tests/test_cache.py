import json
from typing import List, Optional

from matchday.core.storage import DurableStorage, MemoryStorage
from matchday.domain.models import OpenMatchesPayload
from matchday.sync.cache import PersistentCache, is_fresh


class CountingStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.reads: List[str] = []
        self.writes: List[str] = []

    def get_item(self, key: str) -> Optional[str]:
        self.reads.append(key)
        return super().get_item(key)

    def set_item(self, key: str, value: str) -> None:
        self.writes.append(key)
        super().set_item(key, value)


class BrokenStorage(DurableStorage):
    def get_item(self, key):
        raise RuntimeError("storage disabled")

    def set_item(self, key, value):
        raise RuntimeError("storage disabled")

    def remove_item(self, key):
        raise RuntimeError("storage disabled")

    def keys(self):
        raise RuntimeError("storage disabled")


def test_burst_of_sets_coalesces_into_one_durable_write(scheduler, clock) -> None:
    storage = CountingStorage()
    cache = PersistentCache(storage, scheduler, clock=clock)

    for n in range(5):
        cache.set("k", {"n": n})

    assert cache.get("k") == {"n": 4}
    assert storage.writes == []
    assert scheduler.pending == 1

    scheduler.run_pending()

    assert storage.writes == ["k"]
    assert json.loads(storage.get_item("k")) == {"n": 4}
    assert cache.metrics.durable_writes == 1
    assert cache.metrics.coalesced_writes == 4
    assert cache.pending_writes == 0


def test_writes_after_a_flush_land_in_set_order(cache, storage, scheduler) -> None:
    cache.set("k", "first")
    scheduler.run_pending()
    cache.set("k", "second")
    cache.set("k", "third")
    scheduler.run_pending()

    assert json.loads(storage.get_item("k")) == "third"


def test_get_returns_a_snapshot(cache) -> None:
    cache.set("k", {"items": [1, 2]})
    snapshot = cache.get("k")
    snapshot["items"].append(3)

    assert cache.get("k") == {"items": [1, 2]}


def test_durable_record_is_hydrated_once(scheduler, clock) -> None:
    storage = CountingStorage()
    storage.set_item("k", json.dumps({"v": 1}))
    cache = PersistentCache(storage, scheduler, clock=clock)

    assert cache.get("k") == {"v": 1}
    assert cache.get("k") == {"v": 1}
    assert storage.reads == ["k"]
    assert cache.metrics.hydrations == 1


def test_absence_is_memoized(scheduler, clock) -> None:
    storage = CountingStorage()
    cache = PersistentCache(storage, scheduler, clock=clock)

    assert cache.get("missing") is None
    storage.set_item("missing", json.dumps("late"))
    assert cache.get("missing") is None
    assert storage.reads == ["missing"]


def test_corrupt_record_reads_as_absent(storage, scheduler, clock) -> None:
    storage.set_item("k", "{not json")
    cache = PersistentCache(storage, scheduler, clock=clock)

    assert cache.get("k") is None
    assert cache.get_entry("k") is None


def test_quota_exceeded_keeps_serving_from_memory(scheduler, clock) -> None:
    storage = MemoryStorage(quota_bytes=16)
    cache = PersistentCache(storage, scheduler, clock=clock)

    cache.set("big", {"blob": "x" * 200})
    scheduler.run_pending()

    assert storage.get_item("big") is None
    assert cache.get("big") == {"blob": "x" * 200}
    assert cache.metrics.errors == 1
    assert cache.metrics.durable_writes == 0


def test_unavailable_storage_never_raises(scheduler, clock) -> None:
    cache = PersistentCache(BrokenStorage(), scheduler, clock=clock)

    assert cache.get("k") is None
    cache.set("k", {"v": 1})
    scheduler.run_pending()
    cache.flush()
    assert cache.get("k") == {"v": 1}
    assert cache.keys() == ["k"]
    cache.delete("k")
    assert cache.get("k") is None


def test_storage_read_failure_is_not_memoized(scheduler, clock) -> None:
    class FlakyStorage(MemoryStorage):
        fail = True

        def get_item(self, key):
            if self.fail:
                raise RuntimeError("busy")
            return super().get_item(key)

    storage = FlakyStorage()
    storage.set_item("k", json.dumps(1))
    cache = PersistentCache(storage, scheduler, clock=clock)

    assert cache.get("k") is None
    storage.fail = False
    assert cache.get("k") == 1


def test_put_stamps_timestamp(cache, clock) -> None:
    entry = cache.put("k", {"matches": []})

    assert entry.timestamp == clock.now_ms()
    assert cache.get("k") == {"ts": clock.now_ms(), "matches": []}
    stored = cache.get_entry("k")
    assert stored.payload == {"matches": []}
    assert is_fresh(stored, 60_000, now_ms=clock.now_ms())

    clock.advance(61)
    assert not is_fresh(cache.get_entry("k"), 60_000, now_ms=clock.now_ms())


def test_get_model_validates_and_rejects_incompatible_records(cache) -> None:
    cache.put("ok", {"matches": [{"publicCode": "ABC", "seasonId": "S1"}]})
    cache.set("bad", {"ts": 1, "matches": "not-a-list"})

    entry = cache.get_model("ok", OpenMatchesPayload)
    assert entry.payload.codes() == ["ABC"]
    assert cache.get_model("bad", OpenMatchesPayload) is None


def test_delete_drops_pending_write(cache, storage, scheduler) -> None:
    cache.set("k", 1)
    cache.delete("k")

    assert scheduler.run_pending() == 0
    assert storage.get_item("k") is None
    assert cache.get("k") is None


def test_failed_durable_delete_does_not_resurrect_the_record(scheduler, clock) -> None:
    class StickyStorage(MemoryStorage):
        def remove_item(self, key):
            raise OSError("storage disabled")

    storage = StickyStorage()
    storage.set_item("k", json.dumps({"v": 1}))
    cache = PersistentCache(storage, scheduler, clock=clock)

    assert cache.get("k") == {"v": 1}
    cache.delete("k")

    assert cache.get("k") is None
    assert cache.keys() == []
    assert cache.metrics.errors == 1


def test_delete_before_first_read_hides_the_durable_record(scheduler, clock) -> None:
    class StickyStorage(MemoryStorage):
        def remove_item(self, key):
            raise OSError("storage disabled")

    storage = StickyStorage()
    storage.set_item("k", json.dumps({"v": 1}))
    cache = PersistentCache(storage, scheduler, clock=clock)

    cache.delete("k")

    assert cache.get("k") is None
    cache.set("k", {"v": 2})
    assert cache.get("k") == {"v": 2}


def test_flush_persists_everything_now(cache, storage, scheduler) -> None:
    cache.set("a", 1)
    cache.set("b", 2)
    cache.flush()

    assert json.loads(storage.get_item("a")) == 1
    assert json.loads(storage.get_item("b")) == 2
    assert scheduler.pending == 0


def test_keys_merge_memory_and_storage(storage, scheduler, clock) -> None:
    storage.set_item("p:1", json.dumps(1))
    cache = PersistentCache(storage, scheduler, clock=clock)
    cache.set("p:2", 2)
    cache.set("other", 3)

    assert cache.keys("p:") == ["p:1", "p:2"]


def test_listeners_hear_every_write(cache) -> None:
    seen: List[str] = []
    cache.add_listener(seen.append)

    def broken(_key):
        raise RuntimeError("listener bug")

    cache.add_listener(broken)
    cache.set("a", 1)
    cache.put("b", {})
    cache.delete("a")

    assert seen == ["a", "b", "a"]


def test_clear_memory_rehydrates_from_storage(cache, scheduler) -> None:
    cache.set("k", {"v": 1})
    cache.clear_memory()

    assert scheduler.pending == 0
    assert cache.get("k") == {"v": 1}
    assert cache.metrics.hydrations == 1
