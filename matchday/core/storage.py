"""Durable storage backends for the persistent cache.

Every backend stores opaque strings under string keys and is synchronous:
the cache hydrates lazily inside `get()`, which must not suspend. Backends
are allowed to raise; the cache treats any exception as "storage
unavailable" and keeps serving from memory.
"""

from __future__ import annotations

import abc
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class StorageQuotaExceeded(RuntimeError):
    """Raised when a write would exceed the backend's byte budget."""


class DurableStorage(abc.ABC):
    """Abstract key/value string storage."""

    @abc.abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string or None."""

    @abc.abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store `value` under `key`, replacing any previous value."""

    @abc.abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove `key` if present."""

    @abc.abstractmethod
    def keys(self) -> List[str]:
        """List stored keys."""

    def close(self) -> None:  # pragma: no cover - optional override
        return None


class MemoryStorage(DurableStorage):
    """In-process storage; also used for session-scoped state.

    `quota_bytes` emulates a browser storage quota so degrade-to-memory
    paths can be exercised.
    """

    def __init__(self, *, quota_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
        return size + len(key) + len(value)

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None and self._size_with(key, value) > self.quota_bytes:
            raise StorageQuotaExceeded(f"quota of {self.quota_bytes} bytes exceeded by {key}")
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStorage(DurableStorage):
    """All keys in a single JSON object on disk.

    Writes go to a temporary file in the same directory and are moved into
    place with `os.replace`, so a crash mid-write leaves the previous file
    intact.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._data: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._data is not None:
            return self._data
        data: Dict[str, str] = {}
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("storage.file_unreadable", extra={"path": str(self.path)})
                raw = {}
            if isinstance(raw, dict):
                data = {str(k): v for k, v in raw.items() if isinstance(v, str)}
        self._data = data
        return data

    def _persist(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".cache-", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, separators=(",", ":"))
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = dict(self._load())
        data[key] = value
        self._persist(data)
        self._data = data

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        data = dict(data)
        data.pop(key)
        self._persist(data)
        self._data = data

    def keys(self) -> List[str]:
        return list(self._load())


class RedisStorage(DurableStorage):
    """Redis-backed storage, namespaced per client profile."""

    def __init__(self, redis: Any, *, namespace: str = "matchday:cache") -> None:
        self._redis = redis
        self.namespace = namespace.rstrip(":")
        self._prefix = f"{self.namespace}:"

    @classmethod
    def from_url(cls, url: str, *, namespace: str = "matchday:cache", **kwargs: Any) -> "RedisStorage":
        from matchday.core.redis_factory import create_redis_client

        client = create_redis_client(url, component="cache_storage", **kwargs)
        return cls(client, namespace=namespace)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get_item(self, key: str) -> Optional[str]:
        raw = self._redis.get(self._key(key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return str(raw)

    def set_item(self, key: str, value: str) -> None:
        self._redis.set(self._key(key), value)

    def remove_item(self, key: str) -> None:
        self._redis.delete(self._key(key))

    def keys(self) -> List[str]:
        result: List[str] = []
        for raw in self._redis.scan_iter(match=f"{self._prefix}*"):
            name = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
            result.append(name[len(self._prefix):])
        return result

    def close(self) -> None:
        try:
            self._redis.close()
        except Exception:
            logger.debug("storage.redis_close_failed", exc_info=True)


def build_storage(settings) -> DurableStorage:
    """Pick the durable backend named by settings."""

    backend = getattr(settings, "storage_backend", "file")
    if backend == "memory":
        return MemoryStorage()
    if backend == "redis":
        return RedisStorage.from_url(settings.redis_url)
    return JsonFileStorage(settings.cache_file)


__all__ = [
    "DurableStorage",
    "JsonFileStorage",
    "MemoryStorage",
    "RedisStorage",
    "StorageQuotaExceeded",
    "build_storage",
]
