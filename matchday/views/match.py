"""Match page: season-scoped open matches list and single match detail.

List view
    Rendered from the cache immediately. Open matches are refetched only on
    a reload of the list itself or when nothing is cached; past matches only
    on an explicit refresh. The staleness reconciler watches the selected
    season while the list is visible.

Detail view (`#/match?code=...`)
    Rendered from the cache when present. Refetched on a reload of this
    exact match, when nothing is cached, or when the season's meta
    fingerprint moved since the detail was cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from matchday.core.result import Failure, Result, Success
from matchday.domain.models import (
    AvailabilityRow,
    MatchDetailPayload,
    MatchesMeta,
    MatchSummary,
    OpenMatchesPayload,
    PastMatchesPayload,
    Season,
)
from matchday.sync import keys, policy
from matchday.sync.navigation import Query
from matchday.sync.router import Container, GenerationToken
from matchday.sync.staleness import REASON_LOAD, ReconcileTarget, StalenessReconciler, UpdateAffordance
from matchday.views.base import Lookups, PageView, ViewContext, parse_result

logger = logging.getLogger(__name__)

MATCH_ROUTE = "#/match"
PAST_PAGE_SIZE = 20


def match_location(code: str) -> str:
    return f"{MATCH_ROUTE}?{urlencode({'code': code})}"


def open_match_codes(payload: Dict[str, Any]) -> List[str]:
    return [
        str(m["publicCode"])
        for m in payload.get("matches") or []
        if isinstance(m, dict) and m.get("publicCode")
    ]


def match_reconcile_target(ctx: ViewContext) -> ReconcileTarget:
    endpoints = ctx.endpoints
    return ReconcileTarget(
        owner_route=MATCH_ROUTE,
        fetch_meta=endpoints.public_matches_meta,
        fetch_list=endpoints.public_open_matches,
        list_key=keys.open_matches,
        record_key=keys.matches_meta,
        ids_in=open_match_codes,
        open_location=match_location,
    )


def _epoch_ms(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text.isdigit():
        return float(text)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp() * 1000
    except ValueError:
        return 0.0


def _kickoff_ms(match: MatchSummary) -> float:
    if not match.date:
        return 0.0
    stamp = f"{match.date.strip()}T{(match.time or '00:00').strip()}"
    try:
        return datetime.fromisoformat(stamp).timestamp() * 1000
    except ValueError:
        return 0.0


def latest_open_code(matches: Sequence[MatchSummary]) -> str:
    """Newest open match: by creation time, falling back to kickoff time.

    A match with a creation time always beats one without.
    """

    best: Optional[MatchSummary] = None
    best_key = (0, 0.0)
    for match in matches:
        created = _epoch_ms(match.created_at)
        key = (1, created) if created > 0 else (0, _kickoff_ms(match))
        if best is None or key > best_key:
            best, best_key = match, key
    return best.public_code if best else ""


@dataclass(frozen=True)
class MatchListContent:
    season_id: str
    seasons: List[Season]
    open_matches: List[MatchSummary]
    past_matches: List[MatchSummary]
    latest_code: str = ""
    captain_codes: List[str] = field(default_factory=list)
    affordance: Optional[UpdateAffordance] = None
    updated_at: int = 0


@dataclass(frozen=True)
class MatchDetailContent:
    code: str
    match: MatchSummary
    availability: List[AvailabilityRow]
    updated_at: int = 0


class MatchPage(PageView):
    route = MATCH_ROUTE

    def __init__(self, ctx: ViewContext, reconciler: StalenessReconciler, lookups: Lookups) -> None:
        super().__init__(ctx)
        self.reconciler = reconciler
        self.lookups = lookups
        self.mode = ""
        self.season_id = ""
        self.code = ""
        self._seasons: List[Season] = []
        reconciler.on_affordance(self._on_affordance)

    async def render(self, container: Container, query: Query, token: GenerationToken) -> None:
        code = query.get("code")
        if code:
            await self.render_detail(container, code, token)
        else:
            await self.render_list(container, token)

    # List ------------------------------------------------------------------

    def _list_keys(self, season_id: str) -> List[str]:
        return [keys.open_matches(season_id), keys.past_matches(season_id), keys.matches_meta(season_id)]

    def list_content(self, season_id: str) -> MatchListContent:
        cache = self.ctx.cache
        open_entry = cache.get_model(keys.open_matches(season_id), OpenMatchesPayload)
        past_entry = cache.get_model(keys.past_matches(season_id), PastMatchesPayload)
        open_matches = open_entry.payload.matches if open_entry else []
        meta = MatchesMeta.model_validate(self.reconciler.last_meta(season_id))
        return MatchListContent(
            season_id=season_id,
            seasons=list(self._seasons),
            open_matches=open_matches,
            past_matches=past_entry.payload.matches if past_entry else [],
            latest_code=latest_open_code(open_matches),
            captain_codes=meta.captain_codes,
            affordance=self.reconciler.affordance(season_id),
            updated_at=open_entry.timestamp if open_entry else 0,
        )

    async def render_list(self, container: Container, token: GenerationToken) -> None:
        self.reconciler.set_visible(False)
        seasons = await self.lookups.seasons()
        if isinstance(seasons, Failure):
            self.fail(container, token, str(seasons.error))
            return
        if not self.ctx.is_current(token):
            return

        self._seasons = list(seasons.value.seasons)
        self.show_season(container, token, self.lookups.selected_season(seasons.value))

    def show_season(self, container: Container, token: GenerationToken, season_id: str) -> None:
        self.mode = "list"
        self.season_id = season_id
        self.reconciler.watch(season_id, visible=True)

        entry = self.ctx.cache.get_model(keys.open_matches(season_id), OpenMatchesPayload)
        if not self.commit(container, token, self.list_content(season_id), bind=self._list_keys(season_id)):
            return

        reloaded = self.ctx.tracker.is_reload_for_match_list()
        if policy.OPEN_MATCHES.should_fetch(entry, now_ms=self.ctx.now_ms(), reloaded=reloaded):
            self.spawn(f"open_matches:{season_id}", self.refresh_open(season_id))
        self.reconciler.schedule_check(season_id, REASON_LOAD)
        self.prefetch_details(entry.payload.matches if entry else [])

    def select_season(self, season_id: str) -> None:
        """Season picker intent: switch the visible list to another season."""

        if self.container is None or self.ctx.router is None:
            return
        if self.ctx.active_route() != MATCH_ROUTE or self.mode != "list":
            return
        self.lookups.select_season(season_id)
        self.show_season(self.container, self.ctx.router.current_token, season_id)

    async def refresh_open(self, season_id: str) -> Result[OpenMatchesPayload, Any]:
        result = parse_result(
            OpenMatchesPayload, await self.ctx.endpoints.public_open_matches(season_id), "public_open_matches"
        )
        if isinstance(result, Failure):
            logger.info("match.open_refresh_failed", extra={"season": season_id, "error": str(result.error)})
            return result
        self.ctx.cache.put(keys.open_matches(season_id), result.value)
        if self.mode == "list" and self.season_id == season_id:
            self.prefetch_details(result.value.matches)
        return result

    async def refresh_past(self) -> Result[PastMatchesPayload, Any]:
        season_id = self.season_id
        result = parse_result(
            PastMatchesPayload,
            await self.ctx.endpoints.public_past_matches(season_id, 1, PAST_PAGE_SIZE),
            "public_past_matches",
        )
        if isinstance(result, Success):
            self.ctx.cache.put(keys.past_matches(season_id), result.value)
        return result

    def prefetch_details(self, matches: Sequence[MatchSummary]) -> int:
        """On a reload of the list, fetch details that are not cached yet."""

        if not self.ctx.tracker.is_reload_for_match_list():
            return 0
        missing = [
            m.public_code
            for m in matches
            if m.public_code and self.ctx.cache.get_entry(keys.match_detail(m.public_code)) is None
        ]
        for code in missing:
            self.spawn(f"match_detail:{code}", self.refresh_detail(code))
        return len(missing)

    # Update affordance intents ----------------------------------------------

    async def apply_update(self) -> Result[Dict[str, Any], Any]:
        result = await self.reconciler.apply_update(self.season_id)
        if isinstance(result, Success):
            self.prefetch_details(OpenMatchesPayload.model_validate(result.value).matches)
        return result

    def dismiss_update(self) -> None:
        self.reconciler.dismiss(self.season_id)

    def latest_location(self) -> Optional[str]:
        return self.reconciler.open_latest(self.season_id)

    def _on_affordance(self, scope: str, _affordance: Optional[UpdateAffordance]) -> None:
        if self.mode == "list" and scope == self.season_id:
            self.refresh_from_cache()

    # Detail ----------------------------------------------------------------

    def _current_fingerprint(self, season_id: str) -> str:
        if not season_id:
            return ""
        record = self.reconciler.record(season_id)
        return record.fingerprint if record else ""

    def _detail_season(self, payload: Optional[MatchDetailPayload]) -> str:
        if payload is not None and payload.match.season_id:
            return payload.match.season_id
        if self.season_id:
            return self.season_id
        stored = self.ctx.cache.get(keys.SELECTED_SEASON)
        return stored if isinstance(stored, str) else ""

    def detail_content(self, code: str) -> Optional[MatchDetailContent]:
        entry = self.ctx.cache.get_model(keys.match_detail(code), MatchDetailPayload)
        if entry is None:
            return None
        return MatchDetailContent(
            code=code,
            match=entry.payload.match,
            availability=entry.payload.availability,
            updated_at=entry.timestamp,
        )

    async def render_detail(self, container: Container, code: str, token: GenerationToken) -> None:
        self.mode = "detail"
        self.code = code
        self.reconciler.set_visible(False)

        key = keys.match_detail(code)
        entry = self.ctx.cache.get_model(key, MatchDetailPayload)
        cached = entry.payload if entry else None
        current_fp = self._current_fingerprint(self._detail_season(cached))
        cached_fp = cached.meta_fingerprint if cached else ""
        meta_changed = bool(current_fp and cached_fp and current_fp != cached_fp)
        reloaded = self.ctx.tracker.is_reload_for_match_code(code)
        should_fetch = meta_changed or policy.MATCH_DETAIL.should_fetch(
            entry, now_ms=self.ctx.now_ms(), reloaded=reloaded
        )

        if entry is not None:
            self.commit(container, token, self.detail_content(code), bind=[key])
            if should_fetch:
                self.spawn(f"match_detail:{code}", self.refresh_detail(code))
            return

        result = await self.refresh_detail(code)
        if isinstance(result, Failure):
            self.fail(container, token, str(result.error))
            return
        self.commit(container, token, self.detail_content(code), bind=[key])

    async def refresh_detail(self, code: str) -> Result[MatchDetailPayload, Any]:
        result = parse_result(MatchDetailPayload, await self.ctx.endpoints.public_match(code), "public_match")
        if isinstance(result, Failure):
            return result
        payload = result.value
        fingerprint = self._current_fingerprint(self._detail_season(payload))
        payload = payload.model_copy(update={"meta_fingerprint": fingerprint})
        self.ctx.cache.put(keys.match_detail(code), payload)
        return Success(payload)

    async def set_availability(self, code: str, choice: str, player_name: str = "") -> Result[Any, Any]:
        """Post availability; the cached detail changes only after the server accepts it."""

        result = await self.ctx.endpoints.set_availability(code, choice)
        if isinstance(result, Failure):
            return result

        key = keys.match_detail(code)
        entry = self.ctx.cache.get_model(key, MatchDetailPayload)
        if entry is None:
            return result
        rows = result.value.get("availability")
        if isinstance(rows, list):
            availability = [AvailabilityRow.model_validate(r) for r in rows if isinstance(r, dict)]
        else:
            availability = list(entry.payload.availability)
            wanted = player_name.strip().lower()
            for i, row in enumerate(availability):
                if row.player_name.lower() == wanted:
                    availability[i] = row.model_copy(update={"availability": choice})
                    break
            else:
                if wanted:
                    availability.append(AvailabilityRow(player_name=player_name.strip(), availability=choice))
        self.ctx.cache.put(key, entry.payload.model_copy(update={"availability": availability}))
        return result

    # Re-render -------------------------------------------------------------

    def refresh_from_cache(self) -> None:
        if self.container is None:
            return
        if self.mode == "list" and self.season_id:
            self.container.render(self.list_content(self.season_id))
        elif self.mode == "detail" and self.code:
            content = self.detail_content(self.code)
            if content is not None:
                self.container.render(content)


__all__ = [
    "MATCH_ROUTE",
    "MatchDetailContent",
    "MatchListContent",
    "MatchPage",
    "latest_open_code",
    "match_location",
    "match_reconcile_target",
    "open_match_codes",
]
