"""Shared plumbing for page views.

A view renders from the cache first and binds its container to the cache
keys that back what it shows. Any later write to one of those keys
re-renders the container from the cache, whoever wrote it (background
refresh, warmup, "apply update"), so the visible data and the cache never
disagree. Results awaited inside `render` are committed only while the
navigation's generation token is still current.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, FrozenSet, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from matchday.api.endpoints import Endpoints
from matchday.core.error_handler import BackgroundTasks
from matchday.core.result import ApiError, Failure, Result, Success
from matchday.domain.models import PlayersPayload, SeasonsPayload
from matchday.sync import keys, policy
from matchday.sync.cache import PersistentCache
from matchday.sync.navigation import NavigationTracker, Query
from matchday.sync.router import Container, GenerationToken, Guard, RouteController, RouteSpec
from matchday.sync.staleness import strip_envelope

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class ViewContext:
    """Process-wide collaborators every view needs; `router` is bound after routes exist."""

    cache: PersistentCache
    endpoints: Endpoints
    tracker: NavigationTracker
    tasks: BackgroundTasks
    router: Optional[RouteController] = None

    def is_current(self, token: GenerationToken) -> bool:
        return self.router is None or self.router.is_current(token)

    def active_route(self) -> Optional[str]:
        return self.router.active_route if self.router is not None else None

    def now_ms(self) -> int:
        return self.cache.clock.now_ms()


def parse_result(model: Type[M], result: Result[Any, Any], operation: str) -> Result[M, Any]:
    """Validate a successful API payload, turning shape errors into `ApiError`."""

    if isinstance(result, Failure):
        return result
    try:
        return Success(model.model_validate(strip_envelope(result.value)))
    except ValidationError as exc:
        logger.warning("view.payload_invalid", extra={"operation": operation, "errors": exc.error_count()})
        return Failure(ApiError(operation=operation, message="Unexpected response"))


class PageView:
    route = ""
    always_render = False

    def __init__(self, ctx: ViewContext) -> None:
        self.ctx = ctx
        self.container: Optional[Container] = None
        self._bound_keys: FrozenSet[str] = frozenset()
        ctx.cache.add_listener(self._on_cache_write)

    def route_spec(self, guard: Optional[Guard] = None) -> RouteSpec:
        return RouteSpec(render=self.render, always_render=self.always_render, guard=guard)

    async def render(self, container: Container, query: Query, token: GenerationToken) -> None:
        raise NotImplementedError

    @property
    def bound_keys(self) -> FrozenSet[str]:
        return self._bound_keys

    def commit(self, container: Container, token: GenerationToken, content: Any, *, bind: Iterable[str]) -> bool:
        """Render `content` if `token` is still current; False when dropped."""

        if not self.ctx.is_current(token):
            logger.debug("view.stale_result_dropped", extra={"route": self.route, "token": token.value})
            return False
        self.container = container
        self._bound_keys = frozenset(bind)
        container.render(content)
        return True

    def fail(self, container: Container, token: GenerationToken, message: str) -> None:
        if self.ctx.is_current(token):
            container.show_error(message)

    def spawn(self, name: str, coro: Awaitable[Any]):
        return self.ctx.tasks.spawn(name, coro)

    def refresh_from_cache(self) -> None:
        """Rebuild content for the bound keys; views that can, override this."""

    def _on_cache_write(self, key: str) -> None:
        if self.container is not None and key in self._bound_keys:
            self.refresh_from_cache()


class Lookups:
    """Seasons and players shared by several pages."""

    def __init__(self, ctx: ViewContext) -> None:
        self.ctx = ctx

    async def seasons(self) -> Result[SeasonsPayload, Any]:
        cache = self.ctx.cache
        entry = cache.get_model(keys.SEASONS, SeasonsPayload)
        if not policy.SEASONS.should_fetch(entry, now_ms=self.ctx.now_ms()):
            return Success(entry.payload)

        result = parse_result(SeasonsPayload, await self.ctx.endpoints.seasons(), "seasons")
        if isinstance(result, Success):
            cache.put(keys.SEASONS, result.value)
            return result
        if entry is not None:
            logger.info("view.seasons_stale_fallback", extra={"error": str(result.error)})
            return Success(entry.payload)
        return result

    def selected_season(self, seasons: SeasonsPayload) -> str:
        stored = self.ctx.cache.get(keys.SELECTED_SEASON)
        selected = seasons.pick(stored if isinstance(stored, str) else "")
        if selected and selected != stored:
            self.ctx.cache.set(keys.SELECTED_SEASON, selected)
        return selected

    def select_season(self, season_id: str) -> None:
        self.ctx.cache.set(keys.SELECTED_SEASON, season_id)

    async def players(self, *, force: bool = False) -> Result[PlayersPayload, Any]:
        cache = self.ctx.cache
        entry = cache.get_model(keys.PLAYERS, PlayersPayload)
        if entry is not None and entry.payload.players and not policy.PLAYERS.should_fetch(
            entry, now_ms=self.ctx.now_ms(), force=force
        ):
            return Success(entry.payload)

        result = await self.ctx.endpoints.players()
        if isinstance(result, Failure):
            if entry is not None:
                return Success(entry.payload)
            return result
        payload = PlayersPayload.from_response(result.value)
        cache.put(keys.PLAYERS, payload)
        return Success(payload)


__all__ = ["Lookups", "PageView", "ViewContext", "parse_result"]
