"""Season leaderboard page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Sequence

from matchday.core.result import Failure, Result
from matchday.domain.models import LeaderboardPayload, LeaderboardRow, Season
from matchday.sync import keys, policy
from matchday.sync.navigation import Query
from matchday.sync.router import Container, GenerationToken
from matchday.views.base import Lookups, PageView, ViewContext, parse_result

logger = logging.getLogger(__name__)

LEADERBOARD_ROUTE = "#/leaderboard"

SORT_GOALS = "goals"
SORT_ASSISTS = "assists"
SORT_RATING = "rating"


def sort_rows(rows: Sequence[LeaderboardRow], mode: str, show_rating: bool = False) -> List[LeaderboardRow]:
    if mode == SORT_ASSISTS:
        return sorted(rows, key=lambda r: r.assists, reverse=True)
    if mode == SORT_RATING and show_rating:
        return sorted(rows, key=lambda r: r.avg_rating or 0, reverse=True)
    return sorted(rows, key=lambda r: r.goals, reverse=True)


@dataclass(frozen=True)
class LeaderboardContent:
    season_id: str
    seasons: List[Season]
    rows: List[LeaderboardRow]
    sort_mode: str = SORT_GOALS
    cached: bool = False
    updated_at: int = 0


class LeaderboardPage(PageView):
    route = LEADERBOARD_ROUTE

    def __init__(self, ctx: ViewContext, lookups: Lookups) -> None:
        super().__init__(ctx)
        self.lookups = lookups
        self.season_id = ""
        self.sort_mode = SORT_GOALS
        self.show_rating = False
        self._seasons: List[Season] = []

    def content(self, season_id: str) -> LeaderboardContent:
        entry = self.ctx.cache.get_model(keys.leaderboard(season_id), LeaderboardPayload)
        rows = entry.payload.rows if entry else []
        return LeaderboardContent(
            season_id=season_id,
            seasons=list(self._seasons),
            rows=sort_rows(rows, self.sort_mode, self.show_rating),
            sort_mode=self.sort_mode,
            cached=entry is not None,
            updated_at=entry.timestamp if entry else 0,
        )

    async def render(self, container: Container, query: Query, token: GenerationToken) -> None:
        seasons = await self.lookups.seasons()
        if not self.ctx.is_current(token):
            return
        if isinstance(seasons, Failure):
            self.fail(container, token, str(seasons.error))
            return
        self._seasons = list(seasons.value.seasons)
        self.show_season(container, token, self.lookups.selected_season(seasons.value))

    def show_season(self, container: Container, token: GenerationToken, season_id: str) -> None:
        self.season_id = season_id
        key = keys.leaderboard(season_id)
        entry = self.ctx.cache.get_model(key, LeaderboardPayload)
        if not self.commit(container, token, self.content(season_id), bind=[key]):
            return
        reloaded = self.ctx.tracker.is_reload_under(LEADERBOARD_ROUTE)
        if policy.LEADERBOARD.should_fetch(entry, now_ms=self.ctx.now_ms(), reloaded=reloaded):
            self.spawn(f"leaderboard:{season_id}", self.refresh(season_id))

    def select_season(self, season_id: str) -> None:
        """Season picker: show whatever is cached for the season; never fetches."""

        if self.container is None or self.ctx.router is None or self.ctx.active_route() != LEADERBOARD_ROUTE:
            return
        self.lookups.select_season(season_id)
        self.season_id = season_id
        self.commit(self.container, self.ctx.router.current_token, self.content(season_id), bind=[keys.leaderboard(season_id)])

    def set_sort(self, mode: str) -> None:
        self.sort_mode = mode
        self.refresh_from_cache()

    async def refresh(self, season_id: str = "") -> Result[LeaderboardPayload, Any]:
        season_id = season_id or self.season_id
        result = parse_result(
            LeaderboardPayload, await self.ctx.endpoints.leaderboard_season(season_id), "leaderboard_season"
        )
        if isinstance(result, Failure):
            logger.info("leaderboard.refresh_failed", extra={"season": season_id, "error": str(result.error)})
            return result
        self.ctx.cache.put(keys.leaderboard(season_id), result.value)
        return result

    def refresh_from_cache(self) -> None:
        if self.container is not None and self.season_id:
            self.container.render(self.content(self.season_id))


__all__ = ["LEADERBOARD_ROUTE", "LeaderboardContent", "LeaderboardPage", "sort_rows"]
