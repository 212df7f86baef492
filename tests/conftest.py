import dataclasses
import os
from typing import Any, Callable

import pytest

from fakes import FakeClock, FakeDataSource
from matchday.api.client import ApiClient
from matchday.api.endpoints import Endpoints
from matchday.core.scheduler import ManualScheduler
from matchday.core.storage import MemoryStorage
from matchday.sync.activity import ActivityIndicator
from matchday.sync.cache import PersistentCache
from matchday.sync.dedup import RequestDeduplicator

TEST_ENV = {
    "ENVIRONMENT": "test",
    "STORAGE_BACKEND": "memory",
    "REDIS_URL": "",
    "LOG_JSON": "0",
    "REQUIRE_AUTH": "0",
}


@pytest.fixture(scope="session", autouse=True)
def _set_test_env(tmp_path_factory):
    """Force deterministic env for tests and reset cached settings."""

    previous = {key: os.environ.get(key) for key in [*TEST_ENV, "DATA_DIR"]}
    os.environ.update(TEST_ENV)
    os.environ["DATA_DIR"] = str(tmp_path_factory.mktemp("matchday-data"))

    from matchday.core import settings as settings_module

    settings_module.get_settings.cache_clear()
    yield
    settings_module.get_settings.cache_clear()
    for key, value in previous.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def cache(storage, scheduler, clock) -> PersistentCache:
    return PersistentCache(storage, scheduler, clock=clock)


@pytest.fixture
def source() -> FakeDataSource:
    return FakeDataSource()


@pytest.fixture
def indicator() -> ActivityIndicator:
    return ActivityIndicator(delay=0.3)


@pytest.fixture
def api(source, indicator) -> ApiClient:
    return ApiClient(source, dedup=RequestDeduplicator(), indicator=indicator)


@pytest.fixture
def endpoints(api) -> Endpoints:
    return Endpoints(api)


@pytest.fixture
def test_settings():
    from matchday.core.settings import get_settings

    return dataclasses.replace(get_settings(), require_auth=False)


@pytest.fixture
def make_app(test_settings, source, storage, scheduler, clock) -> Callable[..., Any]:
    """Build a `ClientApp` on the fake source, memory storage and manual scheduler."""

    from matchday.app import ClientApp

    def factory(**overrides):
        kwargs = dict(source=source, storage=storage, scheduler=scheduler, clock=clock)
        kwargs.update(overrides)
        settings = kwargs.pop("settings", test_settings)
        return ClientApp(settings, **kwargs)

    return factory
