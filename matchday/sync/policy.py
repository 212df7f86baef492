"""Per-resource fetch policies.

Centralizes the "trust the cache or go to the network" decision so views and
the background warmup agree on the same rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from matchday.sync.cache import CacheEntry, is_fresh

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class FetchPolicy:
    """When a view should fetch instead of (or after) rendering from cache.

    Attributes:
        ttl_ms: Entries older than this are refetched; None means age alone
            never triggers a fetch.
        fetch_on_reload: Refetch when the user reloaded this exact view.
        fetch_when_missing: Fetch when nothing usable is cached.
    """

    ttl_ms: Optional[int] = None
    fetch_on_reload: bool = True
    fetch_when_missing: bool = True

    def should_fetch(
        self,
        entry: Optional[CacheEntry[Any]],
        *,
        now_ms: int,
        reloaded: bool = False,
        force: bool = False,
    ) -> bool:
        if force:
            return True
        if entry is None:
            return self.fetch_when_missing
        if reloaded and self.fetch_on_reload:
            return True
        if self.ttl_ms is not None and not is_fresh(entry, self.ttl_ms, now_ms=now_ms):
            return True
        return False


# Views: cache-first, refetch only on a reload of that view or an empty cache.
OPEN_MATCHES = FetchPolicy()
MATCH_DETAIL = FetchPolicy()
LEADERBOARD = FetchPolicy()
ADMIN_MATCHES = FetchPolicy()
ADMIN_MANAGE = FetchPolicy()
ADMIN_USERS = FetchPolicy()

# Shared lookups: time based.
SEASONS = FetchPolicy(ttl_ms=10 * MINUTE_MS, fetch_on_reload=False)
# Players change rarely; only an explicit refresh replaces a non-empty list.
PLAYERS = FetchPolicy(fetch_on_reload=False)


@dataclass(frozen=True)
class WarmupTTL:
    """Freshness windows used by reload warmup; anything fresher is skipped."""

    open_matches: int = MINUTE_MS
    meta: int = MINUTE_MS
    leaderboard: int = 5 * MINUTE_MS


WARMUP_TTL = WarmupTTL()


__all__ = [
    "ADMIN_MANAGE",
    "ADMIN_MATCHES",
    "ADMIN_USERS",
    "FetchPolicy",
    "LEADERBOARD",
    "MATCH_DETAIL",
    "OPEN_MATCHES",
    "PLAYERS",
    "SEASONS",
    "WARMUP_TTL",
    "WarmupTTL",
]
