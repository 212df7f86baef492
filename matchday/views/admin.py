"""Admin page: a season's matches, single match management and users.

Locations:
    `#/admin` or `#/admin?view=open|past`   season list split by status
    `#/admin?view=manage&code=X&prev=open`  one match with availability editing
    `#/admin?view=users`                    user list

Everything renders from the cache first. The season list is refetched on a
reload of the admin list or when nothing is cached, a managed match only on a
reload of that match or when missing, and the user list on any reload of the
admin page. Mutations update the affected records once the server accepts
them; they never touch the view directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from matchday.core.result import ApiError, Failure, Result, Success
from matchday.domain.models import (
    AdminMatch,
    AdminMatchesPayload,
    AdminUsersPayload,
    AvailabilityRow,
    MatchDetailPayload,
    MatchSummary,
    PlayersPayload,
    Season,
    User,
)
from matchday.sync import keys, policy
from matchday.sync.navigation import Query
from matchday.sync.router import Container, GenerationToken
from matchday.views.base import Lookups, PageView, ViewContext, parse_result

logger = logging.getLogger(__name__)

ADMIN_ROUTE = "#/admin"

VIEW_OPEN = "open"
VIEW_PAST = "past"
VIEW_MANAGE = "manage"
VIEW_USERS = "users"

DEFAULT_TITLE = "Weekly Match"
DEFAULT_KICKOFF = "19:00"


@dataclass(frozen=True)
class AdminListContent:
    season_id: str
    seasons: List[Season]
    view: str
    matches: List[AdminMatch]
    updated_at: int = 0


@dataclass(frozen=True)
class AdminManageContent:
    code: str
    match: MatchSummary
    availability: List[AvailabilityRow]
    players: List[str] = field(default_factory=list)
    prev_view: str = VIEW_OPEN
    updated_at: int = 0


@dataclass(frozen=True)
class AdminUsersContent:
    users: List[User]
    updated_at: int = 0


class AdminPage(PageView):
    """Reached only through `AuthSession.admin_guard`."""

    route = ADMIN_ROUTE

    def __init__(self, ctx: ViewContext, lookups: Lookups) -> None:
        super().__init__(ctx)
        self.lookups = lookups
        self.mode = ""
        self.view = VIEW_OPEN
        self.season_id = ""
        self.code = ""
        self.prev_view = VIEW_OPEN
        self._seasons: List[Season] = []

    async def render(self, container: Container, query: Query, token: GenerationToken) -> None:
        view = (query.get("view") or VIEW_OPEN).lower()
        code = query.get("code") or ""
        if view == VIEW_USERS:
            await self.render_users(container, token)
        elif view == VIEW_MANAGE and code:
            await self.render_manage(container, token, code, (query.get("prev") or VIEW_OPEN).lower())
        else:
            await self.render_list(container, token, VIEW_PAST if view == VIEW_PAST else VIEW_OPEN)

    # Season list -------------------------------------------------------------

    def list_content(self) -> AdminListContent:
        entry = self.ctx.cache.get_model(keys.admin_matches(self.season_id), AdminMatchesPayload)
        payload = entry.payload if entry else AdminMatchesPayload()
        return AdminListContent(
            season_id=self.season_id,
            seasons=list(self._seasons),
            view=self.view,
            matches=payload.past() if self.view == VIEW_PAST else payload.open(),
            updated_at=entry.timestamp if entry else 0,
        )

    async def render_list(self, container: Container, token: GenerationToken, view: str) -> None:
        seasons = await self.lookups.seasons()
        if not self.ctx.is_current(token):
            return
        if isinstance(seasons, Failure):
            self.fail(container, token, str(seasons.error))
            return
        self._seasons = list(seasons.value.seasons)
        self.view = view
        self.show_season(container, token, self.lookups.selected_season(seasons.value))

    def show_season(self, container: Container, token: GenerationToken, season_id: str) -> None:
        self.mode = "list"
        self.season_id = season_id
        key = keys.admin_matches(season_id)
        entry = self.ctx.cache.get_model(key, AdminMatchesPayload)
        if not self.commit(container, token, self.list_content(), bind=[key]):
            return
        reloaded = self.ctx.tracker.is_reload_for_admin_list()
        if policy.ADMIN_MATCHES.should_fetch(entry, now_ms=self.ctx.now_ms(), reloaded=reloaded):
            self.spawn(f"admin_matches:{season_id}", self.refresh_matches(season_id))

    def select_season(self, season_id: str) -> None:
        """Season picker: show what is cached for the season; never fetches."""

        if self.container is None or self.ctx.router is None or self.ctx.active_route() != ADMIN_ROUTE:
            return
        if self.mode != "list":
            return
        self.lookups.select_season(season_id)
        self.season_id = season_id
        key = keys.admin_matches(season_id)
        self.commit(self.container, self.ctx.router.current_token, self.list_content(), bind=[key])

    async def refresh_matches(self, season_id: str = "") -> Result[AdminMatchesPayload, Any]:
        season_id = season_id or self.season_id
        result = parse_result(
            AdminMatchesPayload, await self.ctx.endpoints.admin_list_matches(season_id), "admin_list_matches"
        )
        if isinstance(result, Failure):
            logger.info("admin.matches_refresh_failed", extra={"season": season_id, "error": str(result.error)})
            return result
        self.ctx.cache.put(keys.admin_matches(season_id), result.value)
        return result

    def _cached_matches(self, season_id: str) -> List[AdminMatch]:
        entry = self.ctx.cache.get_model(keys.admin_matches(season_id), AdminMatchesPayload)
        return list(entry.payload.matches) if entry else []

    async def create_match(
        self,
        date: str,
        *,
        time: str = DEFAULT_KICKOFF,
        title: str = DEFAULT_TITLE,
        match_type: str = "",
    ) -> Result[AdminMatch, Any]:
        """Create a match in the selected season and put it on top of the cached list."""

        if not date:
            return Failure(ApiError(operation="admin_create_match", message="Please choose a match date"))
        season_id = self.season_id
        result = await self.ctx.endpoints.admin_create_match(
            {"title": title, "date": date, "time": time, "type": match_type, "seasonId": season_id}
        )
        if isinstance(result, Failure):
            return result

        out = result.value
        created = AdminMatch(
            match_id=out.get("matchId"),
            public_code=str(out.get("publicCode") or ""),
            season_id=str(out.get("seasonId") or season_id),
            title=title,
            date=date,
            time=time,
            type=match_type,
            status="OPEN",
        )
        others = [m for m in self._cached_matches(season_id) if str(m.match_id) != str(created.match_id)]
        self.ctx.cache.put(keys.admin_matches(season_id), AdminMatchesPayload(matches=[created, *others]))
        # Any record under a reused code belongs to an older match.
        self.ctx.cache.delete(keys.match_detail(created.public_code))
        self.ctx.cache.delete(keys.admin_manage(created.public_code))
        return Success(created)

    async def delete_match(self, match_id: str) -> Result[Any, Any]:
        result = await self.ctx.endpoints.admin_delete_match(match_id)
        if isinstance(result, Failure):
            return result
        season_id = self.season_id
        remaining = [m for m in self._cached_matches(season_id) if str(m.match_id) != str(match_id)]
        self.ctx.cache.put(keys.admin_matches(season_id), AdminMatchesPayload(matches=remaining))
        return result

    # Match management --------------------------------------------------------

    def manage_content(self, code: str) -> Optional[AdminManageContent]:
        entry = self.ctx.cache.get_model(keys.admin_manage(code), MatchDetailPayload)
        if entry is None:
            return None
        players = self.ctx.cache.get_model(keys.PLAYERS, PlayersPayload)
        return AdminManageContent(
            code=code,
            match=entry.payload.match,
            availability=entry.payload.availability,
            players=players.payload.players if players else [],
            prev_view=self.prev_view,
            updated_at=entry.timestamp,
        )

    async def render_manage(self, container: Container, token: GenerationToken, code: str, prev_view: str) -> None:
        self.mode = VIEW_MANAGE
        self.code = code
        self.prev_view = prev_view
        bind = [keys.admin_manage(code), keys.PLAYERS]

        # The name picker works from whatever list is cached.
        players = await self.lookups.players()
        if isinstance(players, Failure):
            logger.info("admin.players_unavailable", extra={"error": str(players.error)})
        if not self.ctx.is_current(token):
            return

        entry = self.ctx.cache.get_model(keys.admin_manage(code), MatchDetailPayload)
        if entry is not None:
            self.commit(container, token, self.manage_content(code), bind=bind)
            reloaded = self.ctx.tracker.is_reload_for_admin_match_code(code)
            if policy.ADMIN_MANAGE.should_fetch(entry, now_ms=self.ctx.now_ms(), reloaded=reloaded):
                self.spawn(f"admin_manage:{code}", self.refresh_manage(code))
            return

        result = await self.refresh_manage(code)
        if isinstance(result, Failure):
            self.fail(container, token, str(result.error))
            return
        self.commit(container, token, self.manage_content(code), bind=bind)

    async def refresh_manage(self, code: str) -> Result[MatchDetailPayload, Any]:
        result = parse_result(MatchDetailPayload, await self.ctx.endpoints.public_match(code), "public_match")
        if isinstance(result, Success):
            self.ctx.cache.put(keys.admin_manage(code), result.value)
        return result

    async def refresh_players(self) -> Result[PlayersPayload, Any]:
        return await self.lookups.players(force=True)

    async def set_availability_for(
        self, code: str, player_name: str, availability: str, note: str = ""
    ) -> Result[Any, Any]:
        """Mark a player's availability on their behalf, then reload the match."""

        entry = self.ctx.cache.get_model(keys.admin_manage(code), MatchDetailPayload)
        match_id = entry.payload.match.match_id if entry else None
        if match_id in (None, ""):
            return Failure(ApiError(operation="admin_set_availability_for", message="Match is not loaded"))
        name = player_name.strip()
        if not name:
            return Failure(ApiError(operation="admin_set_availability_for", message="Select a player"))

        result = await self.ctx.endpoints.admin_set_availability_for(
            str(match_id), name, availability.strip().upper(), note
        )
        if isinstance(result, Failure):
            return result
        # The public page reads its own copy; drop it so it refetches on the next visit.
        self.ctx.cache.delete(keys.match_detail(code))
        refreshed = await self.refresh_manage(code)
        if isinstance(refreshed, Failure):
            logger.info("admin.manage_refresh_failed", extra={"code": code, "error": str(refreshed.error)})
        return result

    # Users -------------------------------------------------------------------

    def users_content(self) -> Optional[AdminUsersContent]:
        entry = self.ctx.cache.get_model(keys.ADMIN_USERS, AdminUsersPayload)
        if entry is None:
            return None
        return AdminUsersContent(users=list(entry.payload.users), updated_at=entry.timestamp)

    async def render_users(self, container: Container, token: GenerationToken) -> None:
        self.mode = VIEW_USERS
        entry = self.ctx.cache.get_model(keys.ADMIN_USERS, AdminUsersPayload)
        reloaded = self.ctx.tracker.is_reload_under(ADMIN_ROUTE)
        if not policy.ADMIN_USERS.should_fetch(entry, now_ms=self.ctx.now_ms(), reloaded=reloaded):
            self.commit(container, token, self.users_content(), bind=[keys.ADMIN_USERS])
            return

        result = await self.refresh_users()
        if isinstance(result, Failure) and entry is None:
            self.fail(container, token, str(result.error))
            return
        self.commit(container, token, self.users_content(), bind=[keys.ADMIN_USERS])

    async def refresh_users(self) -> Result[AdminUsersPayload, Any]:
        result = parse_result(AdminUsersPayload, await self.ctx.endpoints.admin_users(), "admin_users")
        if isinstance(result, Success):
            self.ctx.cache.put(keys.ADMIN_USERS, result.value)
        return result

    # Re-render ---------------------------------------------------------------

    def refresh_from_cache(self) -> None:
        if self.container is None:
            return
        if self.mode == "list" and self.season_id:
            self.container.render(self.list_content())
            return
        if self.mode == VIEW_MANAGE and self.code:
            content = self.manage_content(self.code)
        elif self.mode == VIEW_USERS:
            content = self.users_content()
        else:
            content = None
        if content is not None:
            self.container.render(content)


__all__ = [
    "ADMIN_ROUTE",
    "AdminListContent",
    "AdminManageContent",
    "AdminPage",
    "AdminUsersContent",
]
