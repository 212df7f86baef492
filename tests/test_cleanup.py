from matchday.sync import keys
from matchday.sync.cleanup import CleanupPolicy, cleanup_caches
from matchday.sync.policy import DAY_MS


def test_old_and_excess_details_are_removed(cache, clock) -> None:
    cache.put(keys.match_detail("OLD"), {"match": {}})
    clock.advance(31 * DAY_MS / 1000)
    for n in range(4):
        cache.put(keys.match_detail(f"M{n}"), {"match": {}})
        clock.advance(1)
    cache.set(keys.match_detail("NOTS"), {"match": {}})

    report = cleanup_caches(cache, CleanupPolicy(max_detail_items=2))

    assert report.details_expired == 2
    assert report.details_evicted == 2
    assert cache.keys(keys.MATCH_DETAIL_PREFIX) == [keys.match_detail("M2"), keys.match_detail("M3")]


def test_long_lists_are_trimmed(cache) -> None:
    cache.put(keys.open_matches("S1"), {"matches": [{"publicCode": str(n)} for n in range(10)]})
    cache.put(keys.past_matches("S1"), {"matches": [{"publicCode": "A"}]})
    cache.set(keys.past_matches("S2"), "not-a-record")

    report = cleanup_caches(cache, CleanupPolicy(max_list_items=3))

    assert report.lists_trimmed == 1
    assert [m["publicCode"] for m in cache.get(keys.open_matches("S1"))["matches"]] == ["0", "1", "2"]
    assert len(cache.get(keys.past_matches("S1"))["matches"]) == 1


def test_stale_admin_records_expire(cache, clock) -> None:
    cache.put(keys.admin_matches("S1"), {"matches": []})
    cache.put(keys.admin_manage("OLD"), {"match": {"publicCode": "OLD"}})
    clock.advance(15 * DAY_MS / 1000)
    cache.put(keys.admin_matches("S2"), {"matches": []})
    cache.put(keys.admin_manage("NEW"), {"match": {"publicCode": "NEW"}})

    report = cleanup_caches(cache)

    assert report.admin_expired == 2
    assert cache.keys(keys.ADMIN_MANAGE_PREFIX) == [keys.admin_manage("NEW")]
    assert cache.get(keys.admin_matches("S1")) is None
    assert cache.get(keys.admin_matches("S2")) is not None


def test_failing_step_does_not_stop_the_others(cache, monkeypatch) -> None:
    def broken(*_args):
        raise RuntimeError("boom")

    monkeypatch.setattr("matchday.sync.cleanup._prune_details", broken)
    cache.put(keys.open_matches("S1"), {"matches": [1, 2, 3]})

    report = cleanup_caches(cache, CleanupPolicy(max_list_items=1))

    assert report.lists_trimmed == 1
    assert report.as_dict()["details_expired"] == 0
