"""Remote data source seam and the client that fronts it.

The API is a single endpoint dispatching on an `action` parameter. Reads are
GET requests with query parameters; mutations are form-encoded POSTs (no CORS
preflight). Every response is JSON with an `ok` flag.

`ApiClient` is what views use: reads are de-duplicated per request key and
every physical call is counted by the activity indicator. Nothing here
raises into callers; transport problems come back as `Failure(NetworkError)`
and `ok != true` as `Failure(ApiError)`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

import aiohttp

from matchday.core.result import ApiError, Failure, NetworkError, Result, Success
from matchday.sync.activity import ActivityIndicator
from matchday.sync.dedup import RequestDeduplicator
from matchday.sync.keys import request_key

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]
ApiResult = Result[Payload, NetworkError | ApiError]


class RemoteDataSource(Protocol):
    async def read(self, operation: str, params: Mapping[str, Any]) -> ApiResult: ...

    async def mutate(self, operation: str, params: Mapping[str, Any]) -> ApiResult: ...


def decode_response(operation: str, data: Any, *, status: Optional[int] = None) -> ApiResult:
    if not isinstance(data, dict):
        return Failure(NetworkError(operation=operation, message="Malformed response"))
    if data.get("ok") is not True:
        message = str(data.get("error") or "Request failed")
        return Failure(ApiError(operation=operation, message=message, status=status))
    return Success(data)


def _form_value(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "1" if value else "0"
    return "" if value is None else str(value)


class HttpDataSource:
    """aiohttp transport for the matchday API."""

    def __init__(self, base_url: str, *, timeout: float = 20.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def read(self, operation: str, params: Mapping[str, Any]) -> ApiResult:
        query = {"action": operation, **{k: _form_value(v) for k, v in params.items()}}
        session = self._get_session()
        try:
            async with session.get(self._base_url, params=query, headers={"Cache-Control": "no-store"}) as resp:
                data = await resp.json(content_type=None)
                return decode_response(operation, data, status=resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            return Failure(NetworkError(operation=operation, message=str(exc), original_exception=exc))

    async def mutate(self, operation: str, params: Mapping[str, Any]) -> ApiResult:
        form = {"action": operation, **{k: _form_value(v) for k, v in params.items()}}
        session = self._get_session()
        try:
            async with session.post(self._base_url, data=form) as resp:
                data = await resp.json(content_type=None)
                return decode_response(operation, data, status=resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            return Failure(NetworkError(operation=operation, message=str(exc), original_exception=exc))

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class ApiClient:
    """De-duplicated reads and individually executed mutations."""

    def __init__(
        self,
        source: RemoteDataSource,
        *,
        dedup: Optional[RequestDeduplicator] = None,
        indicator: Optional[ActivityIndicator] = None,
    ) -> None:
        self.source = source
        self.dedup = dedup or RequestDeduplicator()
        self.indicator = indicator or ActivityIndicator()

    async def read(self, operation: str, **params: Any) -> ApiResult:
        key = request_key(operation, params)
        try:
            return await self.dedup.read_through(key, lambda: self._call(operation, params, mutation=False))
        except Exception as exc:
            logger.debug("api.read_failed", exc_info=True, extra={"operation": operation})
            return Failure(NetworkError(operation=operation, message=str(exc), original_exception=exc))

    async def mutate(self, operation: str, **params: Any) -> ApiResult:
        try:
            return await self._call(operation, params, mutation=True)
        except Exception as exc:
            logger.debug("api.mutation_failed", exc_info=True, extra={"operation": operation})
            return Failure(NetworkError(operation=operation, message=str(exc), original_exception=exc))

    async def _call(self, operation: str, params: Mapping[str, Any], *, mutation: bool) -> ApiResult:
        async with self.indicator.track():
            if mutation:
                return await self.source.mutate(operation, params)
            return await self.source.read(operation, params)


__all__ = ["ApiClient", "ApiResult", "HttpDataSource", "RemoteDataSource", "decode_response"]
