"""Background "something changed on the server" detection for list views.

A cheap meta operation returns `{fingerprint, latestId}` for a scope (a
season). The reconciler compares it with the last stored `StalenessRecord`
and the locally cached list, and when they disagree offers an
`UpdateAffordance`. Nothing is refetched until the user applies it.

Checks run only while the owning route is active and its list is visible.
Between checks of one scope a cooldown applies, except on first entry
(`"load"`) and tab re-activation (`"tab"`).

The race guard is a heuristic: a list written less than `race_window`
seconds ago that already contains the fresh latest id is trusted over the
fingerprint comparison.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from matchday.core.error_handler import BackgroundTasks, safe_background_task
from matchday.core.result import Failure, NetworkError, Result, Success
from matchday.sync.cache import PersistentCache

logger = logging.getLogger(__name__)

REASON_LOAD = "load"
REASON_TAB = "tab"
COOLDOWN_FREE_REASONS = frozenset({REASON_LOAD, REASON_TAB})

ENVELOPE_FIELDS = frozenset({"ok", "error"})


@dataclass(frozen=True)
class StalenessRecord:
    fingerprint: str
    latest_known_id: str
    ts: int

    def to_record(self) -> Dict[str, Any]:
        return {"ts": self.ts, "fingerprint": self.fingerprint, "latestId": self.latest_known_id}

    @classmethod
    def from_record(cls, record: Any) -> Optional["StalenessRecord"]:
        if not isinstance(record, dict):
            return None
        try:
            ts = int(record.get("ts") or 0)
        except (TypeError, ValueError):
            ts = 0
        return cls(
            fingerprint=str(record.get("fingerprint") or ""),
            latest_known_id=str(record.get("latestId") or record.get("latestCode") or ""),
            ts=ts,
        )


@dataclass(frozen=True)
class UpdateAffordance:
    """A pending, dismissible "updates available" offer for one scope."""

    scope: str
    fingerprint: str
    latest_id: str

    @property
    def can_open_latest(self) -> bool:
        return bool(self.latest_id)


FetchFn = Callable[[str], Awaitable[Result[Dict[str, Any], Any]]]


@dataclass(frozen=True)
class ReconcileTarget:
    """What the reconciler watches, independent of any particular page.

    Attributes:
        owner_route: Route whose list view owns the affordance.
        fetch_meta: scope -> meta result carrying `fingerprint` and the latest id.
        fetch_list: scope -> full list result used by "apply update".
        list_key: scope -> cache key of the list.
        record_key: scope -> cache key of the `StalenessRecord`.
        ids_in: cached list payload -> item ids it contains.
        open_location: latest id -> location that opens it.
        latest_field: name of the latest id in the meta payload.
    """

    owner_route: str
    fetch_meta: FetchFn
    fetch_list: FetchFn
    list_key: Callable[[str], str]
    record_key: Callable[[str], str]
    ids_in: Callable[[Dict[str, Any]], List[str]]
    open_location: Callable[[str], str]
    latest_field: str = "latestCode"


AffordanceListener = Callable[[str, Optional[UpdateAffordance]], None]
AppliedListener = Callable[[str, Dict[str, Any]], None]


def strip_envelope(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k not in ENVELOPE_FIELDS}


class StalenessReconciler:
    """Owns `StalenessRecord`s and the update affordance for one target."""

    def __init__(
        self,
        cache: PersistentCache,
        target: ReconcileTarget,
        *,
        active_route: Callable[[], Optional[str]],
        cooldown: float = 15.0,
        race_window: float = 5.0,
        tasks: Optional[BackgroundTasks] = None,
    ) -> None:
        self._cache = cache
        self._clock = cache.clock
        self.target = target
        self._active_route = active_route
        self.cooldown = cooldown
        self.race_window = race_window
        self._tasks = tasks
        self._scope: Optional[str] = None
        self._visible = False
        self._last_check: Dict[str, float] = {}
        self._affordances: Dict[str, UpdateAffordance] = {}
        self._acknowledged: Dict[str, str] = {}
        self._last_meta: Dict[str, Dict[str, Any]] = {}
        self._affordance_listeners: List[AffordanceListener] = []
        self._applied_listeners: List[AppliedListener] = []

    # Wiring ----------------------------------------------------------------

    def on_affordance(self, listener: AffordanceListener) -> None:
        self._affordance_listeners.append(listener)

    def on_applied(self, listener: AppliedListener) -> None:
        self._applied_listeners.append(listener)

    def attach(self, router: Any) -> None:
        """Re-check when the owning route is re-activated from another route."""

        previous: Dict[str, Optional[str]] = {"route": None}

        def _on_location(route: str, _location: str, _token: Any) -> None:
            came_from, previous["route"] = previous["route"], route
            if route != self.target.owner_route or came_from in (None, route):
                return
            if self._scope:
                self.schedule_check(self._scope, REASON_TAB)

        router.add_listener(_on_location)

    def watch(self, scope: str, *, visible: bool = True) -> None:
        """Called by the owning view when it shows the list for `scope`."""

        if self._scope and self._scope != scope:
            self._set_affordance(self._scope, None)
        self._scope = scope
        self._visible = visible

    def set_visible(self, visible: bool) -> None:
        self._visible = visible

    # Queries ---------------------------------------------------------------

    @property
    def scope(self) -> Optional[str]:
        return self._scope

    def record(self, scope: str) -> Optional[StalenessRecord]:
        return StalenessRecord.from_record(self._cache.get(self.target.record_key(scope)))

    def affordance(self, scope: str) -> Optional[UpdateAffordance]:
        return self._affordances.get(scope)

    def last_meta(self, scope: str) -> Dict[str, Any]:
        return dict(self._last_meta.get(scope) or {})

    def _is_owner_visible(self, scope: str) -> bool:
        return (
            self._active_route() == self.target.owner_route
            and self._visible
            and self._scope == scope
        )

    # Checking --------------------------------------------------------------

    def should_check(self, scope: str, reason: str) -> bool:
        if not self._is_owner_visible(scope):
            return False
        now = self._clock.monotonic()
        last = self._last_check.get(scope)
        if reason not in COOLDOWN_FREE_REASONS and last is not None and now - last < self.cooldown:
            return False
        self._last_check[scope] = now
        return True

    def schedule_check(self, scope: str, reason: str = REASON_LOAD):
        """Start a background check if the gate allows it; returns the task or None."""

        if not self.should_check(scope, reason):
            return None
        name = f"staleness_check:{scope}"
        if self._tasks is not None:
            return self._tasks.spawn(name, self._check(scope))
        return safe_background_task(name, self._check(scope))

    async def check(self, scope: str, reason: str = REASON_LOAD) -> Optional[UpdateAffordance]:
        if not self.should_check(scope, reason):
            return self._affordances.get(scope)
        return await self._check(scope)

    async def _check(self, scope: str) -> Optional[UpdateAffordance]:
        previous = self.record(scope)
        result = await self._fetch(self.target.fetch_meta, scope, "meta")

        if not self._is_owner_visible(scope):
            logger.debug("staleness.check_discarded", extra={"scope": scope})
            return None
        if isinstance(result, Failure):
            self._set_affordance(scope, None)
            return None

        meta = result.value
        self._last_meta[scope] = strip_envelope(meta)
        fresh = StalenessRecord(
            fingerprint=str(meta.get("fingerprint") or ""),
            latest_known_id=str(meta.get(self.target.latest_field) or ""),
            ts=self._clock.now_ms(),
        )
        self._cache.set(self.target.record_key(scope), fresh.to_record())

        if not fresh.fingerprint:
            self._set_affordance(scope, None)
            return None

        if self._is_changed(scope, previous, fresh):
            affordance = UpdateAffordance(scope=scope, fingerprint=fresh.fingerprint, latest_id=fresh.latest_known_id)
            self._set_affordance(scope, affordance)
            return affordance
        self._set_affordance(scope, None)
        return None

    def _is_changed(self, scope: str, previous: Optional[StalenessRecord], fresh: StalenessRecord) -> bool:
        entry = self._cache.get_entry(self.target.list_key(scope))
        ids: List[str] = []
        if entry is not None:
            try:
                ids = [str(i) for i in self.target.ids_in(entry.payload)]
            except Exception:
                logger.debug("staleness.ids_unreadable", exc_info=True, extra={"scope": scope})
                ids = []
        latest = fresh.latest_known_id
        has_latest = not latest or latest in ids

        changed = (
            previous is None
            or not previous.fingerprint
            or previous.fingerprint != fresh.fingerprint
            or not has_latest
        )
        if not changed:
            return False

        just_refreshed = entry is not None and (self._clock.now_ms() - entry.timestamp) < self.race_window * 1000
        if just_refreshed and has_latest:
            logger.debug("staleness.suppressed_recent_refresh", extra={"scope": scope})
            return False
        if self._acknowledged.get(scope) == fresh.fingerprint:
            return False
        return True

    # Affordance actions ----------------------------------------------------

    def dismiss(self, scope: str) -> None:
        affordance = self._affordances.get(scope)
        if affordance is not None:
            self._acknowledged[scope] = affordance.fingerprint
        self._set_affordance(scope, None)

    def open_latest(self, scope: str) -> Optional[str]:
        affordance = self._affordances.get(scope)
        if affordance is None or not affordance.latest_id:
            return None
        return self.target.open_location(affordance.latest_id)

    async def apply_update(self, scope: str) -> Result[Dict[str, Any], Any]:
        """Fetch the full list, then swap cache, record and live view in one step."""

        affordance = self._affordances.get(scope)
        self._set_affordance(scope, None)

        result = await self._fetch(self.target.fetch_list, scope, "list")
        if isinstance(result, Failure):
            logger.info("staleness.apply_failed", extra={"scope": scope, "error": str(result.error)})
            return result

        payload = strip_envelope(result.value)
        previous = self.record(scope)
        fingerprint = affordance.fingerprint if affordance else (previous.fingerprint if previous else "")
        latest = affordance.latest_id if affordance else (previous.latest_known_id if previous else "")

        # No suspension point below: readers never see the new list with the old record.
        self._cache.put(self.target.list_key(scope), payload)
        record = StalenessRecord(fingerprint=fingerprint, latest_known_id=latest, ts=self._clock.now_ms())
        self._cache.set(self.target.record_key(scope), record.to_record())
        if fingerprint:
            self._acknowledged[scope] = fingerprint
        for listener in list(self._applied_listeners):
            try:
                listener(scope, payload)
            except Exception:
                logger.exception("staleness.applied_listener_failed")
        return Success(payload)

    # Helpers ---------------------------------------------------------------

    async def _fetch(self, fn: FetchFn, scope: str, what: str) -> Result[Dict[str, Any], Any]:
        try:
            return await fn(scope)
        except Exception as exc:
            logger.debug("staleness.fetch_failed", exc_info=True, extra={"scope": scope, "what": what})
            return Failure(NetworkError(operation=f"staleness.{what}", message=str(exc), original_exception=exc))

    def _set_affordance(self, scope: str, affordance: Optional[UpdateAffordance]) -> None:
        current = self._affordances.get(scope)
        if current == affordance:
            return
        if affordance is None:
            self._affordances.pop(scope, None)
        else:
            self._affordances[scope] = affordance
        for listener in list(self._affordance_listeners):
            try:
                listener(scope, affordance)
            except Exception:
                logger.exception("staleness.affordance_listener_failed")


__all__ = [
    "ReconcileTarget",
    "StalenessReconciler",
    "StalenessRecord",
    "UpdateAffordance",
    "strip_envelope",
]
