import asyncio

import pytest

from fakes import open_matches_response
from matchday.core.result import ApiError, Failure, NetworkError, Success
from matchday.sync.dedup import RequestDeduplicator
from matchday.sync.keys import request_key


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_factory_call() -> None:
    dedup = RequestDeduplicator()
    gate = asyncio.Event()
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        await gate.wait()
        return Success({"n": calls})

    waiters = [asyncio.create_task(dedup.read_through("k", factory)) for _ in range(5)]
    await asyncio.sleep(0)
    assert dedup.in_flight("k")
    gate.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert all(r == Success({"n": 1}) for r in results)
    assert dedup.metrics.started == 1
    assert dedup.metrics.joined == 4
    assert len(dedup) == 0


@pytest.mark.asyncio
async def test_every_waiter_sees_the_same_failure_and_key_is_cleared() -> None:
    dedup = RequestDeduplicator()
    gate = asyncio.Event()

    async def factory():
        await gate.wait()
        raise ConnectionError("offline")

    waiters = [asyncio.create_task(dedup.read_through("k", factory)) for _ in range(3)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert all(isinstance(r, ConnectionError) for r in results)
    assert not dedup.in_flight("k")
    assert dedup.metrics.failed == 1

    async def ok():
        return Success("fresh")

    assert await dedup.read_through("k", ok) == Success("fresh")


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_abort_shared_request() -> None:
    dedup = RequestDeduplicator()
    gate = asyncio.Event()

    async def factory():
        await gate.wait()
        return Success("done")

    first = asyncio.create_task(dedup.read_through("k", factory))
    second = asyncio.create_task(dedup.read_through("k", factory))
    await asyncio.sleep(0)
    first.cancel()
    await asyncio.sleep(0)
    gate.set()

    assert await second == Success("done")
    with pytest.raises(asyncio.CancelledError):
        await first


@pytest.mark.asyncio
async def test_sequential_calls_are_not_deduplicated() -> None:
    dedup = RequestDeduplicator()
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        return Success(calls)

    assert await dedup.read_through("k", factory) == Success(1)
    assert await dedup.read_through("k", factory) == Success(2)


def test_request_key_ignores_parameter_order() -> None:
    a = request_key("public_past_matches", {"seasonId": "S1", "page": 1})
    b = request_key("public_past_matches", {"page": 1, "seasonId": "S1"})

    assert a == b
    assert a.value.startswith("action=public_past_matches&")
    assert request_key("public_open_matches", {"seasonId": "S2"}) != request_key(
        "public_open_matches", {"seasonId": "S1"}
    )


@pytest.mark.asyncio
async def test_api_client_deduplicates_reads(api, source) -> None:
    gate = source.hold("public_open_matches")
    source.respond("public_open_matches", open_matches_response("A"))

    waiters = [asyncio.create_task(api.read("public_open_matches", seasonId="S1")) for _ in range(3)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*waiters)

    assert source.count("public_open_matches") == 1
    assert all(isinstance(r, Success) for r in results)


@pytest.mark.asyncio
async def test_api_client_does_not_deduplicate_mutations(api, source) -> None:
    source.respond("set_availability", {"ok": True})

    await asyncio.gather(
        api.mutate("set_availability", code="A", availability="YES"),
        api.mutate("set_availability", code="A", availability="YES"),
    )

    assert source.count("set_availability", kind="mutate") == 2


@pytest.mark.asyncio
async def test_api_client_maps_failures(api, source) -> None:
    source.respond("seasons", {"ok": False, "error": "Season store offline"})
    source.respond("players", ConnectionError("offline"))
    source.respond("me", ["not", "a", "dict"])

    api_failure = await api.read("seasons")
    transport_failure = await api.read("players")
    malformed = await api.read("me")

    assert isinstance(api_failure, Failure) and isinstance(api_failure.error, ApiError)
    assert str(api_failure.error) == "Season store offline"
    assert isinstance(transport_failure, Failure) and isinstance(transport_failure.error, NetworkError)
    assert isinstance(malformed, Failure) and isinstance(malformed.error, NetworkError)
