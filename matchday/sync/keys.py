"""Cache key builders and request identity normalization.

Rules:
- Cache keys carry a version suffix; bump it when a payload shape changes so
  old records simply read as absent.
- Request keys sort parameters so callers never miss each other's in-flight
  read because they passed kwargs in a different order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlencode

SEASONS = "mlfc_seasons_cache_v1"
SELECTED_SEASON = "mlfc_selected_season_v1"
PLAYERS = "mlfc_players_cache_v2"
AUTH_TOKEN = "mlfc_token_v1"
CURRENT_USER = "mlfc_user_v1"
ADMIN_USERS = "mlfc_admin_users_cache_v1"

OPEN_MATCHES_PREFIX = "mlfc_open_matches_cache_v2:"
PAST_MATCHES_PREFIX = "mlfc_past_matches_cache_v2:"
MATCHES_META_PREFIX = "mlfc_matches_meta_v2:"
MATCH_DETAIL_PREFIX = "mlfc_match_detail_cache_v2:"
LEADERBOARD_PREFIX = "mlfc_leaderboard_v2:"
ADMIN_MATCHES_PREFIX = "mlfc_admin_matches_cache_ls_v1:"
ADMIN_MANAGE_PREFIX = "mlfc_admin_manage_cache_v3:"

RELOAD_LOCATION = "mlfc_reload_hash_v1"


@dataclass(frozen=True)
class RequestKey:
    operation: str
    value: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


def _param(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if value is None:
        return ""
    return str(value)


def request_key(operation: str, params: Mapping[str, Any] | None = None) -> RequestKey:
    """Deduplication identity: operation plus parameters in sorted order."""

    items = sorted((str(k), _param(v)) for k, v in (params or {}).items() if k != "action")
    query = urlencode([("action", operation), *items])
    return RequestKey(operation=operation, value=query)


def open_matches(season_id: str) -> str:
    return f"{OPEN_MATCHES_PREFIX}{season_id}"


def past_matches(season_id: str) -> str:
    return f"{PAST_MATCHES_PREFIX}{season_id}"


def matches_meta(season_id: str) -> str:
    return f"{MATCHES_META_PREFIX}{season_id}"


def match_detail(code: str) -> str:
    return f"{MATCH_DETAIL_PREFIX}{code}"


def leaderboard(season_id: str) -> str:
    return f"{LEADERBOARD_PREFIX}{season_id}"


def admin_matches(season_id: str) -> str:
    return f"{ADMIN_MATCHES_PREFIX}{season_id}"


def admin_manage(code: str) -> str:
    return f"{ADMIN_MANAGE_PREFIX}{code}"


__all__ = [
    "RequestKey",
    "request_key",
    "open_matches",
    "past_matches",
    "matches_meta",
    "match_detail",
    "leaderboard",
    "admin_matches",
    "admin_manage",
]
