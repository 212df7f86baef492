"""Hash-route controller with generation tokens.

Every location change mints a new `GenerationToken`, whether or not the route
changed. Async work started under an older token must call
`controller.is_current(token)` before touching shared view state and quietly
drop its result otherwise; the network call itself is never aborted.

Containers are created once per route and kept alive while hidden. Returning
to a route with the exact same full location (query included) only switches
the visible container, unless the route is flagged `always_render`.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

from matchday.sync.navigation import DEFAULT_LOCATION, Query, parse_location

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5


@dataclass(frozen=True, order=True)
class GenerationToken:
    value: int

    def __str__(self) -> str:  # pragma: no cover - trivial
        return str(self.value)


class Container(Protocol):
    route: str

    def render(self, content: Any) -> None: ...

    def show_loading(self) -> None: ...

    def show_error(self, message: str) -> None: ...


class ViewSurface(Protocol):
    def ensure_container(self, route: str) -> Container: ...

    def show_only(self, route: str) -> None: ...


RenderFn = Callable[[Container, Query, GenerationToken], Awaitable[None]]
Guard = Callable[[str], Optional[str]]
LocationListener = Callable[[str, str, GenerationToken], None]


@dataclass(frozen=True)
class RouteSpec:
    """How one route renders.

    `always_render` is for views whose content depends on state outside the
    location (login/account page). `guard` may return a location to redirect
    to instead of rendering.
    """

    render: RenderFn
    always_render: bool = False
    guard: Optional[Guard] = None


@dataclass
class RouteState:
    route: str
    generation_token: GenerationToken
    full_location: str = ""
    container_rendered: bool = False


@dataclass
class MemoryContainer:
    """Headless container: keeps the last committed content and its status."""

    route: str
    visible: bool = False
    status: str = "empty"
    content: Any = None
    error: str = ""
    renders: int = 0

    def render(self, content: Any) -> None:
        self.content = content
        self.status = "ready"
        self.error = ""
        self.renders += 1

    def show_loading(self) -> None:
        self.status = "loading"
        self.content = None

    def show_error(self, message: str) -> None:
        self.status = "error"
        self.error = message or "Something went wrong"


@dataclass
class MemorySurface:
    containers: Dict[str, MemoryContainer] = field(default_factory=dict)

    def ensure_container(self, route: str) -> MemoryContainer:
        container = self.containers.get(route)
        if container is None:
            container = MemoryContainer(route=route)
            self.containers[route] = container
        return container

    def show_only(self, route: str) -> None:
        for name, container in self.containers.items():
            container.visible = name == route

    @property
    def visible_route(self) -> Optional[str]:
        for name, container in self.containers.items():
            if container.visible:
                return name
        return None


class RouteController:
    """Owns route resolution, generation tokens and re-render suppression."""

    def __init__(
        self,
        routes: Mapping[str, RouteSpec],
        surface: ViewSurface,
        *,
        default_route: str = DEFAULT_LOCATION,
    ) -> None:
        if default_route not in routes:
            raise ValueError(f"default route {default_route!r} is not registered")
        self._routes = dict(routes)
        self._surface = surface
        self.default_route = default_route
        self._counter = itertools.count(1)
        self._current = GenerationToken(0)
        self._states: Dict[str, RouteState] = {}
        self._listeners: List[LocationListener] = []
        self._active_route: Optional[str] = None
        self._location = ""

    # Queries ---------------------------------------------------------------

    @property
    def current_token(self) -> GenerationToken:
        return self._current

    def is_current(self, token: GenerationToken) -> bool:
        return token == self._current

    @property
    def active_route(self) -> Optional[str]:
        return self._active_route

    @property
    def location(self) -> str:
        return self._location

    def state(self, route: str) -> Optional[RouteState]:
        return self._states.get(route)

    def add_listener(self, listener: LocationListener) -> None:
        """Called after every location change, rendered or skipped."""
        self._listeners.append(listener)

    def resolve(self, location: str) -> tuple[str, Query]:
        path, query = parse_location(location)
        route = path if path in self._routes else self.default_route
        return route, query

    # Lifecycle -------------------------------------------------------------

    def _mint(self) -> GenerationToken:
        self._current = GenerationToken(next(self._counter))
        return self._current

    async def start(self, initial_location: str = "") -> GenerationToken:
        return await self.navigate(initial_location or self.default_route)

    async def navigate(self, location: str, *, _redirects: int = 0) -> GenerationToken:
        """Handle one location change and return the token it minted."""

        full_location = location or self.default_route
        token = self._mint()
        route, query = self.resolve(full_location)
        spec = self._routes[route]

        if spec.guard is not None:
            redirect = spec.guard(full_location)
            if redirect and redirect != full_location:
                if _redirects >= MAX_REDIRECTS:
                    logger.error("router.redirect_loop", extra={"location": full_location})
                else:
                    return await self.navigate(redirect, _redirects=_redirects + 1)

        self._location = full_location
        self._active_route = route
        container = self._surface.ensure_container(route)
        self._surface.show_only(route)

        state = self._states.get(route)
        if state is None:
            state = RouteState(route=route, generation_token=token)
            self._states[route] = state
        first_time = not state.container_rendered
        should_render = first_time or state.full_location != full_location or spec.always_render
        state.full_location = full_location
        state.generation_token = token

        if should_render:
            await self._render(spec, state, container, query, token, first_time=first_time)
        else:
            logger.debug("router.render_skipped", extra={"location": full_location})

        if self.is_current(token):
            self._notify(route, full_location, token)
        return token

    async def _render(
        self,
        spec: RouteSpec,
        state: RouteState,
        container: Container,
        query: Query,
        token: GenerationToken,
        *,
        first_time: bool,
    ) -> None:
        # Only a render that completes under the current token counts.
        state.container_rendered = False
        if first_time:
            container.show_loading()
        try:
            await spec.render(container, query, token)
        except Exception as exc:
            logger.exception("router.render_failed", extra={"route": state.route})
            if self.is_current(token):
                container.show_error(str(exc) or exc.__class__.__name__)
            return
        if self.is_current(token):
            state.container_rendered = True

    def _notify(self, route: str, location: str, token: GenerationToken) -> None:
        for listener in list(self._listeners):
            try:
                listener(route, location, token)
            except Exception:
                logger.exception("router.listener_failed")


__all__ = [
    "Container",
    "GenerationToken",
    "MemoryContainer",
    "MemorySurface",
    "RouteController",
    "RouteSpec",
    "RouteState",
    "ViewSurface",
]
