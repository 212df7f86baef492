"""Counters describing cache and request behaviour.

Components own an instance and bump it in place; nothing is exported to an
external collector. The counters answer "did we hit the network?" in tests
and in the diagnostics log line emitted on shutdown.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class CacheMetrics:
    """Persistent cache counters."""

    hits: int = 0
    misses: int = 0
    hydrations: int = 0
    sets: int = 0
    deletes: int = 0
    durable_writes: int = 0
    coalesced_writes: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def as_dict(self) -> dict:
        data = asdict(self)
        data["hit_rate"] = round(self.hit_rate, 3)
        return data


@dataclass
class RequestMetrics:
    """Deduplicator counters."""

    started: int = 0
    joined: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


__all__ = ["CacheMetrics", "RequestMetrics"]
