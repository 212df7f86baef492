"""Signed-in session state, the route guard built on it, and the account page.

Token issuance is external; this module only keeps what the login flow
handed over and the user profile fetched with `me`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from matchday.api.endpoints import Endpoints
from matchday.core.result import Failure
from matchday.domain.models import User
from matchday.sync import keys
from matchday.sync.cache import PersistentCache
from matchday.sync.navigation import Query, parse_location
from matchday.sync.router import Container, GenerationToken
from matchday.views.base import PageView, ViewContext

logger = logging.getLogger(__name__)

LOGIN_ROUTE = "#/login"
PUBLIC_ROUTES = frozenset({LOGIN_ROUTE, "#/leaderboard"})


class AuthSession:
    def __init__(self, cache: PersistentCache, endpoints: Endpoints) -> None:
        self._cache = cache
        self._endpoints = endpoints

    @property
    def token(self) -> str:
        value = self._cache.get(keys.AUTH_TOKEN)
        return value.strip() if isinstance(value, str) else ""

    def sign_in(self, token: str, user: Optional[User] = None) -> None:
        self._cache.set(keys.AUTH_TOKEN, str(token or ""))
        if user is not None:
            self._cache.set(keys.CURRENT_USER, user.model_dump(mode="json", by_alias=True))

    def clear(self) -> None:
        self._cache.delete(keys.AUTH_TOKEN)
        self._cache.delete(keys.CURRENT_USER)

    def user(self) -> Optional[User]:
        entry = self._cache.get_model(keys.CURRENT_USER, User)
        return entry.payload if entry else None

    async def refresh_me(self, *, force: bool = False) -> Optional[User]:
        if not self.token:
            self.clear()
            return None
        if not force:
            cached = self.user()
            if cached is not None:
                return cached
        result = await self._endpoints.me()
        if isinstance(result, Failure):
            logger.info("auth.me_failed", extra={"error": str(result.error)})
            self.clear()
            return None
        raw = result.value.get("user")
        if not isinstance(raw, dict):
            self.clear()
            return None
        user = User.model_validate(raw)
        self._cache.set(keys.CURRENT_USER, user.model_dump(mode="json", by_alias=True))
        return user

    def guard(self, location: str) -> Optional[str]:
        """Signed-out users may only see public routes."""

        path, _query = parse_location(location)
        if not self.token and path not in PUBLIC_ROUTES:
            return LOGIN_ROUTE
        return None

    def admin_guard(self, location: str) -> Optional[str]:
        """Only a signed-in admin with a known profile gets past; others go sign in."""

        user = self.user() if self.token else None
        if user is None or not user.is_admin:
            return LOGIN_ROUTE
        return None


@dataclass(frozen=True)
class AccountContent:
    user: Optional[User]

    @property
    def signed_in(self) -> bool:
        return self.user is not None


class AccountPage(PageView):
    """Depends on session state rather than the location, so it always re-renders."""

    route = LOGIN_ROUTE
    always_render = True

    def __init__(self, ctx: ViewContext, session: AuthSession) -> None:
        super().__init__(ctx)
        self.session = session

    async def render(self, container: Container, query: Query, token: GenerationToken) -> None:
        user = self.session.user()
        if self.session.token and user is None:
            user = await self.session.refresh_me()
        self.commit(container, token, AccountContent(user=user), bind=[keys.CURRENT_USER, keys.AUTH_TOKEN])

    def refresh_from_cache(self) -> None:
        if self.container is not None:
            self.container.render(AccountContent(user=self.session.user()))


__all__ = ["AccountContent", "AccountPage", "AuthSession", "LOGIN_ROUTE", "PUBLIC_ROUTES"]
