"""Named API operations.

Read methods go through `ApiClient.read` (de-duplicated); everything that
changes server state goes through `ApiClient.mutate`.
"""

from __future__ import annotations

from typing import Any, Mapping

from matchday.api.client import ApiClient, ApiResult


class Endpoints:
    def __init__(self, client: ApiClient) -> None:
        self.client = client

    # auth ------------------------------------------------------------------

    async def me(self) -> ApiResult:
        return await self.client.read("me")

    # seasons / leaderboard -------------------------------------------------

    async def seasons(self) -> ApiResult:
        return await self.client.read("seasons")

    async def leaderboard_season(self, season_id: str) -> ApiResult:
        return await self.client.read("leaderboard_season", seasonId=season_id)

    # public matches --------------------------------------------------------

    async def public_open_matches(self, season_id: str) -> ApiResult:
        return await self.client.read("public_open_matches", seasonId=season_id)

    async def public_past_matches(self, season_id: str, page: int = 1, page_size: int = 20) -> ApiResult:
        return await self.client.read("public_past_matches", seasonId=season_id, page=page, pageSize=page_size)

    async def public_matches_meta(self, season_id: str) -> ApiResult:
        return await self.client.read("public_matches_meta", seasonId=season_id)

    async def public_match(self, code: str) -> ApiResult:
        return await self.client.read("public_match", code=code)

    async def players(self) -> ApiResult:
        return await self.client.read("players")

    # admin reads -----------------------------------------------------------

    async def admin_list_matches(self, season_id: str) -> ApiResult:
        return await self.client.read("admin_list_matches", seasonId=season_id)

    async def admin_users(self) -> ApiResult:
        return await self.client.read("admin_users")

    # mutations -------------------------------------------------------------

    async def set_availability(self, code: str, availability: str) -> ApiResult:
        return await self.client.mutate("set_availability", code=code, availability=availability)

    async def admin_create_match(self, payload: Mapping[str, Any]) -> ApiResult:
        return await self.client.mutate("admin_create_match", **payload)

    async def admin_delete_match(self, match_id: str) -> ApiResult:
        return await self.client.mutate("admin_delete_match", matchId=match_id)

    async def admin_set_availability_for(
        self, match_id: str, player_name: str, availability: str, note: str = ""
    ) -> ApiResult:
        return await self.client.mutate(
            "admin_set_availability_for",
            matchId=match_id,
            playerName=player_name,
            availability=availability,
            note=note,
        )


__all__ = ["Endpoints"]
