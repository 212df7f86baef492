import asyncio
import json
import logging

import pytest

from matchday.core.error_handler import BackgroundTasks, safe_background_task
from matchday.core.logging import JsonFormatter
from matchday.core.redis_factory import parse_redis_target
from matchday.core.result import ApiError, Failure, NetworkError, Success


def test_success_helpers():
    result = Success(2)

    assert result.is_success() and not result.is_failure()
    assert result.unwrap() == 2
    assert result.map(lambda v: v * 3) == Success(6)
    assert result.flat_map(lambda v: Failure("no")) == Failure("no")
    assert isinstance(result.map(lambda v: v / 0), Failure)


def test_failure_helpers():
    error = ApiError(operation="seasons", message="")
    result = Failure(error)

    assert result.is_failure()
    assert result.unwrap_or("fallback") == "fallback"
    assert result.map(lambda v: v + 1) is result
    assert str(error) == "seasons failed"
    with pytest.raises(RuntimeError):
        result.unwrap()


def test_network_error_message():
    error = NetworkError(operation="players", message="timeout")

    assert str(error) == "Network error during players: timeout"


@pytest.mark.asyncio
async def test_safe_background_task_swallows_and_logs(caplog):
    async def boom():
        raise ValueError("bad payload")

    with caplog.at_level(logging.ERROR):
        task = safe_background_task("refresh", boom())
        assert await task is None

    assert "refresh" in caplog.text


@pytest.mark.asyncio
async def test_background_tasks_drain_and_shutdown():
    tasks = BackgroundTasks(timeout=1.0)
    done = []

    async def quick():
        done.append("quick")

    async def forever():
        await asyncio.Event().wait()

    tasks.spawn("quick", quick())
    await tasks.drain()
    assert done == ["quick"]
    assert len(tasks) == 0

    slow = tasks.spawn("forever", forever())
    await asyncio.sleep(0)
    await tasks.shutdown()
    assert slow.cancelled()


def test_json_formatter_emits_structured_record():
    record = logging.LogRecord("matchday.sync", logging.INFO, __file__, 1, "cache.%s", ("flushed",), None)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["name"] == "matchday.sync"
    assert payload["message"] == "cache.flushed"


def test_parse_redis_target():
    target = parse_redis_target("redis://:secret@cache:6380/3", component="cache")

    assert (target.host, target.port, target.db, target.password) == ("cache", 6380, 3, "secret")
    assert parse_redis_target("redis://localhost", component="cache").db == 0
