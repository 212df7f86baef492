import asyncio
from typing import List

import pytest

from matchday.sync.activity import ActivityIndicator


@pytest.mark.asyncio
async def test_fast_operation_never_shows_indicator() -> None:
    changes: List[bool] = []
    indicator = ActivityIndicator(delay=0.05, on_change=changes.append)

    async with indicator.track():
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.08)

    assert changes == []
    assert not indicator.visible
    assert indicator.outstanding == 0


@pytest.mark.asyncio
async def test_slow_operation_shows_then_hides_at_zero() -> None:
    changes: List[bool] = []
    indicator = ActivityIndicator(delay=0.05, on_change=changes.append)

    indicator.acquire()
    indicator.acquire()
    await asyncio.sleep(0.08)
    assert changes == [True]

    indicator.release()
    assert indicator.visible
    indicator.release()

    assert changes == [True, False]
    assert not indicator.is_busy()


@pytest.mark.asyncio
async def test_track_releases_on_exception() -> None:
    indicator = ActivityIndicator(delay=0.05)

    with pytest.raises(RuntimeError):
        async with indicator.track():
            raise RuntimeError("boom")

    assert indicator.outstanding == 0


def test_release_without_acquire_is_ignored() -> None:
    indicator = ActivityIndicator()
    indicator.release()

    assert indicator.outstanding == 0


@pytest.mark.asyncio
async def test_on_change_errors_do_not_break_counting() -> None:
    def broken(_visible: bool) -> None:
        raise RuntimeError("ui gone")

    indicator = ActivityIndicator(delay=0.01, on_change=broken)
    indicator.acquire()
    await asyncio.sleep(0.03)
    indicator.release()

    assert not indicator.visible
