"""Background cache warmup after a browser-style reload.

Pages read their caches first; warmup only refreshes records for the page
that was reloaded, using the same keys and shapes the pages use. Normal
loads and tab switches never warm anything, and other pages' caches are left
exactly as they were.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from matchday.api.endpoints import Endpoints
from matchday.core.result import Success
from matchday.sync import keys
from matchday.sync.cache import PersistentCache, is_fresh
from matchday.sync.navigation import NavigationTracker
from matchday.sync.policy import WARMUP_TTL, WarmupTTL
from matchday.sync.staleness import StalenessRecord, strip_envelope

logger = logging.getLogger(__name__)


class Warmup:
    def __init__(
        self,
        cache: PersistentCache,
        endpoints: Endpoints,
        tracker: NavigationTracker,
        *,
        ttl: WarmupTTL = WARMUP_TTL,
    ) -> None:
        self.cache = cache
        self.endpoints = endpoints
        self.tracker = tracker
        self.ttl = ttl

    def selected_season(self) -> str:
        value = self.cache.get(keys.SELECTED_SEASON)
        return value if isinstance(value, str) else ""

    def _stale(self, key: str, ttl_ms: int, required_field: Optional[str] = None) -> bool:
        entry = self.cache.get_entry(key)
        if entry is None:
            return True
        if required_field and not entry.payload.get(required_field):
            return True
        return not is_fresh(entry, ttl_ms, now_ms=self.cache.clock.now_ms())

    async def run(self) -> List[str]:
        """Warm the reloaded page's records; returns the keys refreshed."""

        if not self.tracker.is_reload():
            return []
        path, _query = self.tracker.reload_query()
        season_id = self.selected_season()
        if not season_id:
            logger.debug("warmup.no_season")
            return []

        jobs: List[Awaitable[Optional[str]]] = []
        if path == "#/match":
            if self._stale(keys.open_matches(season_id), self.ttl.open_matches, "matches"):
                jobs.append(self._warm_open(season_id))
            if self._stale(keys.matches_meta(season_id), self.ttl.meta):
                jobs.append(self._warm_meta(season_id))
        elif path == "#/leaderboard":
            if self._stale(keys.leaderboard(season_id), self.ttl.leaderboard, "rows"):
                jobs.append(self._warm_leaderboard(season_id))

        if not jobs:
            return []
        results = await asyncio.gather(*jobs, return_exceptions=True)
        warmed = [r for r in results if isinstance(r, str)]
        for r in results:
            if isinstance(r, BaseException):
                logger.debug("warmup.job_failed", exc_info=r)
        logger.info("warmup.done", extra={"path": path, "season": season_id, "warmed": warmed})
        return warmed

    async def _fetch_into(self, key: str, fetch: Callable[[], Awaitable[Any]], shape: Callable[[dict], dict]) -> Optional[str]:
        result = await fetch()
        if not isinstance(result, Success):
            return None
        self.cache.put(key, shape(result.value))
        return key

    async def _warm_open(self, season_id: str) -> Optional[str]:
        return await self._fetch_into(
            keys.open_matches(season_id),
            lambda: self.endpoints.public_open_matches(season_id),
            lambda data: {"matches": data.get("matches") or []},
        )

    async def _warm_meta(self, season_id: str) -> Optional[str]:
        result = await self.endpoints.public_matches_meta(season_id)
        if not isinstance(result, Success):
            return None
        record = StalenessRecord(
            fingerprint=str(result.value.get("fingerprint") or ""),
            latest_known_id=str(result.value.get("latestCode") or ""),
            ts=self.cache.clock.now_ms(),
        )
        key = keys.matches_meta(season_id)
        self.cache.set(key, record.to_record())
        return key

    async def _warm_leaderboard(self, season_id: str) -> Optional[str]:
        return await self._fetch_into(
            keys.leaderboard(season_id),
            lambda: self.endpoints.leaderboard_season(season_id),
            strip_envelope,
        )


async def warm_app_data(
    cache: PersistentCache,
    endpoints: Endpoints,
    tracker: NavigationTracker,
    *,
    ttl: WarmupTTL = WARMUP_TTL,
) -> List[str]:
    return await Warmup(cache, endpoints, tracker, ttl=ttl).run()


__all__ = ["Warmup", "warm_app_data"]
