"""Application factory for the matchday client."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Callable, Optional, Sequence

from matchday.api.client import ApiClient, HttpDataSource, RemoteDataSource
from matchday.api.endpoints import Endpoints
from matchday.core.clock import Clock, SystemClock
from matchday.core.error_handler import BackgroundTasks, setup_global_exception_handler
from matchday.core.logging import configure_logging
from matchday.core.scheduler import LoopScheduler, WriteScheduler
from matchday.core.settings import Settings, get_settings
from matchday.core.storage import DurableStorage, MemoryStorage, build_storage
from matchday.sync.activity import ActivityIndicator
from matchday.sync.cache import PersistentCache
from matchday.sync.cleanup import CleanupReport, cleanup_caches
from matchday.sync.dedup import RequestDeduplicator
from matchday.sync.navigation import NavigationSignals, NavigationTracker, StaticSignals
from matchday.sync.prefetch import warm_app_data
from matchday.sync.router import GenerationToken, MemorySurface, RouteController, ViewSurface
from matchday.sync.staleness import StalenessReconciler
from matchday.views.account import LOGIN_ROUTE, AccountPage, AuthSession
from matchday.views.admin import ADMIN_ROUTE, AdminPage
from matchday.views.base import Lookups, ViewContext
from matchday.views.leaderboard import LEADERBOARD_ROUTE, LeaderboardPage
from matchday.views.match import MATCH_ROUTE, MatchPage, match_reconcile_target

__all__ = ["ClientApp", "create_application", "main"]

logger = logging.getLogger(__name__)


class ClientApp:
    """Owns every process-wide component and wires them together.

    Construction does no I/O beyond opening the durable backend; `start()`
    classifies the load, prunes the cache, renders the first route and
    kicks off reload warmup in the background.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        source: Optional[RemoteDataSource] = None,
        storage: Optional[DurableStorage] = None,
        session_storage: Optional[DurableStorage] = None,
        scheduler: Optional[WriteScheduler] = None,
        clock: Optional[Clock] = None,
        surface: Optional[ViewSurface] = None,
        on_busy_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        settings = self.settings
        self.clock = clock or SystemClock()
        self.indicator = ActivityIndicator(delay=settings.busy_delay, on_change=on_busy_change)
        self.storage = storage or build_storage(settings)
        self.scheduler = scheduler or LoopScheduler(
            delay=settings.write_delay,
            idle_timeout=settings.idle_timeout,
            is_busy=self.indicator.is_busy,
        )
        self.cache = PersistentCache(self.storage, self.scheduler, clock=self.clock)

        self.source = source or HttpDataSource(settings.api_base, timeout=settings.api_timeout)
        self.dedup = RequestDeduplicator()
        self.client = ApiClient(self.source, dedup=self.dedup, indicator=self.indicator)
        self.endpoints = Endpoints(self.client)

        self.tracker = NavigationTracker(session_storage or MemoryStorage())
        self.tasks = BackgroundTasks()
        self.context = ViewContext(
            cache=self.cache, endpoints=self.endpoints, tracker=self.tracker, tasks=self.tasks
        )
        self.lookups = Lookups(self.context)
        self.session = AuthSession(self.cache, self.endpoints)
        self.reconciler = StalenessReconciler(
            self.cache,
            match_reconcile_target(self.context),
            active_route=self.context.active_route,
            cooldown=settings.meta_cooldown,
            race_window=settings.race_window,
            tasks=self.tasks,
        )

        self.match_page = MatchPage(self.context, self.reconciler, self.lookups)
        self.leaderboard_page = LeaderboardPage(self.context, self.lookups)
        self.account_page = AccountPage(self.context, self.session)
        self.admin_page = AdminPage(self.context, self.lookups)

        guard = self.session.guard if settings.require_auth else None
        self.surface = surface or MemorySurface()
        self.router = RouteController(
            {
                MATCH_ROUTE: self.match_page.route_spec(guard),
                LEADERBOARD_ROUTE: self.leaderboard_page.route_spec(guard),
                LOGIN_ROUTE: self.account_page.route_spec(),
                ADMIN_ROUTE: self.admin_page.route_spec(self.session.admin_guard),
            },
            self.surface,
            default_route=MATCH_ROUTE,
        )
        self.context.router = self.router
        self.reconciler.attach(self.router)
        self.cleanup_report: Optional[CleanupReport] = None

    def default_location(self) -> str:
        if self.settings.require_auth and not self.session.token:
            return LEADERBOARD_ROUTE
        return MATCH_ROUTE

    async def start(
        self,
        initial_location: str = "",
        signals: Optional[NavigationSignals] = None,
    ) -> GenerationToken:
        setup_global_exception_handler()
        location = initial_location or self.default_location()
        self.cleanup_report = cleanup_caches(self.cache)
        self.tracker.initialize(signals, location)
        token = await self.router.start(location)
        self.tasks.spawn(
            "warm_app_data",
            warm_app_data(self.cache, self.endpoints, self.tracker),
        )
        logger.info("app.started", extra={"location": location, "reload": self.tracker.is_reload()})
        return token

    async def navigate(self, location: str) -> GenerationToken:
        return await self.router.navigate(location)

    async def open_latest_match(self) -> Optional[GenerationToken]:
        location = self.match_page.latest_location()
        if not location:
            return None
        return await self.navigate(location)

    async def idle(self) -> None:
        """Wait for background work, then persist pending cache writes."""
        await self.tasks.drain()
        self.cache.flush()

    async def close(self) -> None:
        await self.tasks.shutdown()
        try:
            self.cache.close()
        finally:
            close = getattr(self.source, "close", None)
            if close is not None:
                await close()

    async def __aenter__(self) -> "ClientApp":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def create_application(settings: Optional[Settings] = None, **kwargs) -> ClientApp:
    return ClientApp(settings, **kwargs)


async def _run(location: str, reload: bool) -> int:
    settings = get_settings()
    configure_logging(settings)
    signals = StaticSignals(primary="reload" if reload else "navigate")
    async with create_application(settings) as app:
        await app.start(location, signals)
        await app.idle()
        container = app.surface.ensure_container(app.router.active_route or MATCH_ROUTE)
        logger.info(
            "app.synced",
            extra={
                "route": app.router.active_route,
                "status": getattr(container, "status", ""),
                "cache": app.cache.metrics.as_dict(),
                "requests": app.dedup.metrics.as_dict(),
            },
        )
        return 0 if getattr(container, "status", "") != "error" else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Sync the matchday cache for one page.")
    parser.add_argument("location", nargs="?", default="", help="Hash location, e.g. '#/match'.")
    parser.add_argument("--reload", action="store_true", help="Treat this run as a reload of the location.")
    args = parser.parse_args(argv)
    try:
        return asyncio.run(_run(args.location, args.reload))
    except (KeyboardInterrupt, SystemExit):
        logger.info("Client stopped")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
