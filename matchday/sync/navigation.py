"""Reload detection and reload-scoped fetch decisions.

Views refetch from the API only when the user reloaded *that* page. The
tracker classifies the current load once at boot and remembers the exact
location that was reloaded, so a detail view can tell "the app was reloaded
somewhere" apart from "this match was reloaded".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol, Tuple, Union
from urllib.parse import parse_qsl

from matchday.core.storage import DurableStorage
from matchday.sync import keys

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "#/match"
LEGACY_TYPE_RELOAD = 1

Query = Dict[str, str]
LocationPredicate = Union[str, Callable[[str, Query], bool]]


def parse_location(location: str) -> Tuple[str, Query]:
    """Split `#/path?a=1&b=2` into the path and its first-wins query values."""

    path, _, qs = (location or "").partition("?")
    query: Query = {}
    for name, value in parse_qsl(qs, keep_blank_values=True):
        query.setdefault(name, value)
    return path, query


class NavigationSignals(Protocol):
    def navigation_type(self) -> Optional[str]:
        """Primary signal: "navigate", "reload", "back_forward", "prerender"."""

    def legacy_navigation_type(self) -> Optional[int]:
        """Deprecated numeric signal where 1 means reload."""


@dataclass(frozen=True)
class StaticSignals:
    """Navigation signals known up front (launcher flags, tests)."""

    primary: Optional[str] = None
    legacy: Optional[int] = None

    def navigation_type(self) -> Optional[str]:
        return self.primary

    def legacy_navigation_type(self) -> Optional[int]:
        return self.legacy


def detect_reload(signals: Optional[NavigationSignals]) -> bool:
    if signals is None:
        return False
    try:
        primary = signals.navigation_type()
        if isinstance(primary, str):
            return primary == "reload"
    except Exception:
        logger.debug("navigation.primary_signal_failed", exc_info=True)
    try:
        return signals.legacy_navigation_type() == LEGACY_TYPE_RELOAD
    except Exception:
        logger.debug("navigation.legacy_signal_failed", exc_info=True)
        return False


@dataclass(frozen=True)
class NavigationContext:
    is_reload: bool = False
    reloaded_location: str = ""
    _parsed: Tuple[str, Query] = field(default=("", {}), repr=False, compare=False)

    @classmethod
    def build(cls, is_reload: bool, reloaded_location: str) -> "NavigationContext":
        location = reloaded_location if is_reload else ""
        return cls(is_reload=is_reload, reloaded_location=location, _parsed=parse_location(location))


class NavigationTracker:
    """Owns the write-once `NavigationContext` for one process."""

    def __init__(self, session: DurableStorage) -> None:
        self._session = session
        self._context: Optional[NavigationContext] = None

    def initialize(self, signals: Optional[NavigationSignals], current_location: str) -> NavigationContext:
        """Classify this load; later calls return the first result unchanged."""

        if self._context is not None:
            return self._context

        reload = detect_reload(signals)
        location = current_location or DEFAULT_LOCATION
        if reload:
            try:
                self._session.set_item(keys.RELOAD_LOCATION, location)
            except Exception:
                logger.debug("navigation.session_write_failed", exc_info=True)
        else:
            try:
                self._session.remove_item(keys.RELOAD_LOCATION)
            except Exception:
                logger.debug("navigation.session_clear_failed", exc_info=True)

        stored = location
        if reload:
            try:
                stored = self._session.get_item(keys.RELOAD_LOCATION) or location
            except Exception:
                stored = location
        self._context = NavigationContext.build(reload, stored)
        logger.info("navigation.classified", extra={"reload": reload, "location": stored if reload else ""})
        return self._context

    @property
    def context(self) -> NavigationContext:
        if self._context is None:
            return NavigationContext()
        return self._context

    def is_reload(self) -> bool:
        return self.context.is_reload

    def reload_query(self) -> Tuple[str, Query]:
        path, query = self.context._parsed
        return path, dict(query)

    def is_reload_for(self, predicate: LocationPredicate) -> bool:
        """True only if this load was a reload and the reloaded location matches.

        A string predicate names one exact location: `"#/match"` is the list
        view and does not match `"#/match?code=ABC"`. A callable gets the
        reloaded path and query.
        """

        ctx = self.context
        if not ctx.is_reload or not ctx.reloaded_location:
            return False
        path, query = self.reload_query()
        if isinstance(predicate, str):
            return parse_location(predicate) == (path, query)
        return bool(predicate(path, query))

    def is_reload_under(self, prefix: str) -> bool:
        """True if the reloaded location starts with `prefix` (any view of a page)."""

        ctx = self.context
        return ctx.is_reload and bool(ctx.reloaded_location) and ctx.reloaded_location.startswith(prefix)

    def is_reload_for_match_list(self) -> bool:
        return self.is_reload_for(lambda path, query: path == "#/match" and not query.get("code"))

    def is_reload_for_match_code(self, code: str) -> bool:
        wanted = str(code or "")
        return self.is_reload_for(
            lambda path, query: path == "#/match" and bool(query.get("code")) and query["code"] == wanted
        )

    def is_reload_for_admin_list(self) -> bool:
        return self.is_reload_for(
            lambda path, query: path == "#/admin" and (query.get("view") or "open").lower() != "manage"
        )

    def is_reload_for_admin_match_code(self, code: str) -> bool:
        wanted = str(code or "")
        return self.is_reload_for(
            lambda path, query: path == "#/admin" and bool(query.get("code")) and query["code"] == wanted
        )


__all__ = [
    "DEFAULT_LOCATION",
    "NavigationContext",
    "NavigationSignals",
    "NavigationTracker",
    "StaticSignals",
    "detect_reload",
    "parse_location",
]
