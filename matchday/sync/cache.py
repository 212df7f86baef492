"""Persistent key/value cache with an in-memory mirror and coalesced writes.

Reads are synchronous: the mirror is consulted first and a key is hydrated
from durable storage at most once per process (a missing or unparsable
record is memoized as absent). Writes update the mirror immediately and
queue one deferred durable write per key carrying only the latest value.

Durable storage is best effort. Any backend error (quota, disabled, network)
is logged at debug level and the mirror keeps serving the session.

Freshness is not enforced here; callers compare `CacheEntry.timestamp`
against their own TTL with `is_fresh`.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from matchday.core.clock import Clock, SystemClock
from matchday.core.metrics import CacheMetrics
from matchday.core.scheduler import ScheduledHandle, WriteScheduler
from matchday.core.storage import DurableStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

TS_FIELD = "ts"

_ABSENT = object()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Typed view of one cached record."""

    key: str
    timestamp: int
    payload: T


def is_fresh(entry: Optional[CacheEntry[Any]], ttl_ms: int, *, now_ms: int) -> bool:
    if entry is None or not entry.timestamp:
        return False
    return (now_ms - entry.timestamp) <= ttl_ms


def _safe_parse(raw: Optional[str]) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


class PersistentCache:
    """Process-lifetime mirror in front of a `DurableStorage` backend."""

    def __init__(
        self,
        storage: DurableStorage,
        scheduler: WriteScheduler,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._storage = storage
        self._scheduler = scheduler
        self._clock = clock or SystemClock()
        self._mem: Dict[str, Any] = {}
        self._pending: Dict[str, Any] = {}
        self._timers: Dict[str, ScheduledHandle] = {}
        self.metrics = CacheMetrics()
        self._listeners: List[Callable[[str], None]] = []

    @property
    def clock(self) -> Clock:
        return self._clock

    def add_listener(self, listener: Callable[[str], None]) -> None:
        """Called with the key after every `set`/`put`/`delete`."""
        self._listeners.append(listener)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                logger.exception("cache.listener_failed", extra={"key": key})

    # Reads ---------------------------------------------------------------

    def get(self, key: str) -> Optional[Any]:
        """Return a snapshot of the stored record, or None when absent."""

        if key in self._mem:
            value = self._mem[key]
            if value is _ABSENT:
                self.metrics.misses += 1
                return None
            self.metrics.hits += 1
            return copy.deepcopy(value)

        try:
            raw = self._storage.get_item(key)
        except Exception:
            self.metrics.errors += 1
            self.metrics.misses += 1
            logger.debug("cache.durable_read_failed", exc_info=True, extra={"key": key})
            return None

        parsed = _safe_parse(raw)
        self.metrics.hydrations += 1
        self._mem[key] = _ABSENT if parsed is None else parsed
        if parsed is None:
            self.metrics.misses += 1
            return None
        self.metrics.hits += 1
        return copy.deepcopy(parsed)

    def get_entry(self, key: str) -> Optional[CacheEntry[Dict[str, Any]]]:
        record = self.get(key)
        if not isinstance(record, dict):
            return None
        try:
            ts = int(record.get(TS_FIELD) or 0)
        except (TypeError, ValueError):
            ts = 0
        payload = {k: v for k, v in record.items() if k != TS_FIELD}
        return CacheEntry(key=key, timestamp=ts, payload=payload)

    def get_model(self, key: str, model: Type[M]) -> Optional[CacheEntry[M]]:
        """Validate the record against `model`; incompatible records read as absent."""

        entry = self.get_entry(key)
        if entry is None:
            return None
        try:
            payload = model.model_validate(entry.payload)
        except ValidationError:
            logger.debug("cache.record_incompatible", extra={"key": key, "model": model.__name__})
            return None
        return CacheEntry(key=key, timestamp=entry.timestamp, payload=payload)

    def keys(self, prefix: str = "") -> List[str]:
        names = {k for k, v in self._mem.items() if v is not _ABSENT}
        try:
            names.update(self._storage.keys())
        except Exception:
            self.metrics.errors += 1
            logger.debug("cache.durable_keys_failed", exc_info=True)
        return sorted(k for k in names if k.startswith(prefix) and self._mem.get(k) is not _ABSENT)

    # Writes --------------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        """Update the mirror now; persist the latest value on the next flush."""

        snapshot = copy.deepcopy(value)
        self._mem[key] = snapshot
        self.metrics.sets += 1
        if key in self._pending:
            self.metrics.coalesced_writes += 1
        self._pending[key] = snapshot
        if key not in self._timers:
            handle = self._scheduler.schedule(lambda: self._flush_key(key))
            # A scheduler without a loop flushes inline; keep only live handles.
            if key in self._pending:
                self._timers[key] = handle
        self._notify(key)

    def put(self, key: str, payload: Mapping[str, Any] | BaseModel) -> CacheEntry[Dict[str, Any]]:
        """Write `payload` as a new record stamped with the current time."""

        if isinstance(payload, BaseModel):
            data = payload.model_dump(mode="json", by_alias=True)
        else:
            data = dict(payload)
        data.pop(TS_FIELD, None)
        ts = self._clock.now_ms()
        self.set(key, {TS_FIELD: ts, **data})
        return CacheEntry(key=key, timestamp=ts, payload=copy.deepcopy(data))

    def delete(self, key: str) -> None:
        self._mem[key] = _ABSENT
        self._pending.pop(key, None)
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()
        self.metrics.deletes += 1
        try:
            self._storage.remove_item(key)
        except Exception:
            self.metrics.errors += 1
            logger.debug("cache.durable_delete_failed", exc_info=True, extra={"key": key})
        self._notify(key)

    # Flushing ------------------------------------------------------------

    def _flush_key(self, key: str) -> None:
        self._timers.pop(key, None)
        if key not in self._pending:
            return
        value = self._pending.pop(key)
        try:
            serialized = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
            self._storage.set_item(key, serialized)
        except Exception:
            self.metrics.errors += 1
            logger.debug("cache.durable_write_failed", exc_info=True, extra={"key": key})
            return
        self.metrics.durable_writes += 1

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def flush(self) -> None:
        """Persist every pending write now."""

        for key in list(self._pending):
            handle = self._timers.pop(key, None)
            if handle is not None:
                handle.cancel()
            self._flush_key(key)

    def clear_memory(self) -> None:
        """Drop the mirror (pending writes are flushed first)."""

        self.flush()
        self._mem.clear()

    def close(self) -> None:
        self.flush()
        self._storage.close()


__all__ = ["CacheEntry", "PersistentCache", "TS_FIELD", "is_fresh"]
