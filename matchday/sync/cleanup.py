"""Housekeeping for the durable cache so it stays small and under quota.

Runs once at boot, before any view reads. Every step is best effort: a
failure is logged and the remaining steps still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from matchday.sync import keys
from matchday.sync.cache import PersistentCache
from matchday.sync.policy import DAY_MS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupPolicy:
    max_detail_items: int = 80
    detail_max_age_ms: int = 30 * DAY_MS
    max_list_items: int = 120
    admin_max_age_ms: int = 14 * DAY_MS


DEFAULT_CLEANUP = CleanupPolicy()

LIST_PREFIXES = (keys.OPEN_MATCHES_PREFIX, keys.PAST_MATCHES_PREFIX)
LIST_FIELD = "matches"


@dataclass
class CleanupReport:
    details_expired: int = 0
    details_evicted: int = 0
    lists_trimmed: int = 0
    admin_expired: int = 0

    def as_dict(self) -> dict:
        return {
            "details_expired": self.details_expired,
            "details_evicted": self.details_evicted,
            "lists_trimmed": self.lists_trimmed,
            "admin_expired": self.admin_expired,
        }


def cleanup_caches(
    cache: PersistentCache,
    policy: CleanupPolicy = DEFAULT_CLEANUP,
    *,
    now_ms: Optional[int] = None,
) -> CleanupReport:
    now = cache.clock.now_ms() if now_ms is None else now_ms
    report = CleanupReport()
    for step in (_prune_details, _trim_lists, _prune_admin):
        try:
            step(cache, policy, now, report)
        except Exception:
            logger.warning("cache.cleanup_step_failed", exc_info=True, extra={"step": step.__name__})
    logger.info("cache.cleanup_done", extra=report.as_dict())
    return report


def _prune_details(cache: PersistentCache, policy: CleanupPolicy, now: int, report: CleanupReport) -> None:
    remaining: List[tuple[int, str]] = []
    for key in cache.keys(keys.MATCH_DETAIL_PREFIX):
        entry = cache.get_entry(key)
        ts = entry.timestamp if entry else 0
        if not ts or now - ts > policy.detail_max_age_ms:
            cache.delete(key)
            report.details_expired += 1
            continue
        remaining.append((ts, key))

    if len(remaining) <= policy.max_detail_items:
        return
    remaining.sort(reverse=True)
    for _ts, key in remaining[policy.max_detail_items:]:
        cache.delete(key)
        report.details_evicted += 1


def _trim_lists(cache: PersistentCache, policy: CleanupPolicy, now: int, report: CleanupReport) -> None:
    for prefix in LIST_PREFIXES:
        for key in cache.keys(prefix):
            record = cache.get(key)
            if not isinstance(record, dict):
                continue
            items = record.get(LIST_FIELD)
            if not isinstance(items, list) or len(items) <= policy.max_list_items:
                continue
            record[LIST_FIELD] = items[: policy.max_list_items]
            cache.set(key, record)
            report.lists_trimmed += 1


def _prune_admin(cache: PersistentCache, policy: CleanupPolicy, now: int, report: CleanupReport) -> None:
    admin_keys = cache.keys(keys.ADMIN_MATCHES_PREFIX) + cache.keys(keys.ADMIN_MANAGE_PREFIX)
    for key in admin_keys:
        entry = cache.get_entry(key)
        ts = entry.timestamp if entry else 0
        if not ts or now - ts > policy.admin_max_age_ms:
            cache.delete(key)
            report.admin_expired += 1


__all__ = ["CleanupPolicy", "CleanupReport", "DEFAULT_CLEANUP", "cleanup_caches"]
