"""Payload models for cached resources.

Records keep the API's camelCase field names on disk; Python code uses the
snake_case attributes. Unknown fields are preserved so a newer API does not
invalidate older clients' caches.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class Season(WireModel):
    season_id: str
    name: str = ""


class SeasonsPayload(WireModel):
    seasons: List[Season] = Field(default_factory=list)
    current_season_id: str = ""

    def pick(self, preferred: str = "") -> str:
        """Preferred season if it still exists, else the current one, else the first."""
        ids = [s.season_id for s in self.seasons]
        if preferred and preferred in ids:
            return preferred
        return self.current_season_id or (ids[0] if ids else "")


class MatchSummary(WireModel):
    public_code: str
    match_id: Optional[str | int] = None
    season_id: str = ""
    date: str = ""
    time: str = ""
    type: str = ""
    status: str = ""
    score_home: Optional[str | int] = None
    score_away: Optional[str | int] = None
    created_at: Optional[str | int] = None


class OpenMatchesPayload(WireModel):
    matches: List[MatchSummary] = Field(default_factory=list)

    def codes(self) -> List[str]:
        return [m.public_code for m in self.matches]


class PastMatchesPayload(WireModel):
    matches: List[MatchSummary] = Field(default_factory=list)
    page: int = 1
    page_size: int = 20
    total: int = 0
    has_more: bool = False


class AvailabilityRow(WireModel):
    player_name: str
    availability: str = ""
    note: str = ""


class MatchDetailPayload(WireModel):
    match: MatchSummary
    availability: List[AvailabilityRow] = Field(default_factory=list)
    meta_fingerprint: str = ""


class LeaderboardRow(WireModel):
    player_name: str = ""
    goals: int = 0
    assists: int = 0
    avg_rating: Optional[float] = None


class LeaderboardPayload(WireModel):
    rows: List[LeaderboardRow] = Field(default_factory=list)


class PlayersPayload(WireModel):
    """Sorted, de-duplicated player names."""

    players: List[str] = Field(default_factory=list)

    @classmethod
    def from_response(cls, data: dict) -> "PlayersPayload":
        names = set()
        for row in data.get("players") or []:
            name = row.get("name") if isinstance(row, dict) else row
            if name:
                names.add(str(name))
        return cls(players=sorted(names))


class User(WireModel):
    name: str
    is_admin: bool = False


class AdminUsersPayload(WireModel):
    users: List[User] = Field(default_factory=list)


class AdminMatch(MatchSummary):
    title: str = ""

    @property
    def is_open(self) -> bool:
        return self.status.upper() == "OPEN"


class AdminMatchesPayload(WireModel):
    """One season's matches as the admin sees them, open and past together."""

    matches: List[AdminMatch] = Field(default_factory=list)

    def open(self) -> List[AdminMatch]:
        return [m for m in self.matches if m.is_open]

    def past(self) -> List[AdminMatch]:
        return [m for m in self.matches if not m.is_open]


class MatchesMeta(WireModel):
    """Lightweight fingerprint for one season's open matches."""

    fingerprint: str = ""
    latest_code: str = ""
    captain_codes: List[str] = Field(default_factory=list)


__all__ = [
    "AdminMatch",
    "AdminMatchesPayload",
    "AdminUsersPayload",
    "AvailabilityRow",
    "LeaderboardPayload",
    "LeaderboardRow",
    "MatchDetailPayload",
    "MatchSummary",
    "MatchesMeta",
    "OpenMatchesPayload",
    "PastMatchesPayload",
    "PlayersPayload",
    "Season",
    "SeasonsPayload",
    "User",
    "WireModel",
]
