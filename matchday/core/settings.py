from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from matchday.core.env import load_env


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_USER_DATA_DIR = Path.home() / ".matchday" / "data"
DEFAULT_API_BASE = "https://mlfc-api.manorlakes-football.workers.dev"

STORAGE_BACKENDS = {"file", "memory", "redis"}


@dataclass(frozen=True)
class Settings:
    environment: str  # development, production, test
    data_dir: Path
    api_base: str
    api_timeout: float
    storage_backend: str
    cache_file: Path
    redis_url: str
    write_delay: float
    idle_timeout: float
    busy_delay: float
    meta_cooldown: float
    race_window: float
    log_level: str
    log_json: bool
    log_file: str
    require_auth: bool = True


def _get_float(name: str, default: float, *, minimum: Optional[float] = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw.strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


load_env()


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir and env_dir.strip():
        return Path(env_dir).expanduser()
    return DEFAULT_USER_DATA_DIR


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = os.getenv("ENVIRONMENT", "development").strip().lower()
    if environment not in {"development", "production", "test"}:
        environment = "development"

    data_dir = _default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    api_base = (os.getenv("API_BASE", "") or DEFAULT_API_BASE).strip().rstrip("/")

    storage_backend = os.getenv("STORAGE_BACKEND", "file").strip().lower() or "file"
    if storage_backend not in STORAGE_BACKENDS:
        storage_backend = "file"
    redis_url = os.getenv("REDIS_URL", "").strip()
    if storage_backend == "redis" and not redis_url:
        # Nothing to connect to; keep the cache usable.
        storage_backend = "file"

    cache_file_raw = os.getenv("CACHE_FILE", "").strip()
    cache_file = Path(cache_file_raw).expanduser() if cache_file_raw else data_dir / "cache.json"

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    log_json = _get_bool("LOG_JSON", default=False)
    log_file = os.getenv("LOG_FILE", "").strip()
    if not log_file:
        log_dir = data_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = str(log_dir / "app.log")

    return Settings(
        environment=environment,
        data_dir=data_dir,
        api_base=api_base,
        api_timeout=_get_float("API_TIMEOUT", 20.0, minimum=0.1),
        storage_backend=storage_backend,
        cache_file=cache_file,
        redis_url=redis_url,
        write_delay=_get_float("CACHE_WRITE_DELAY", 0.05, minimum=0.0),
        idle_timeout=_get_float("CACHE_IDLE_TIMEOUT", 0.6, minimum=0.0),
        busy_delay=_get_float("BUSY_INDICATOR_DELAY", 0.3, minimum=0.0),
        meta_cooldown=_get_float("META_CHECK_COOLDOWN", 15.0, minimum=0.0),
        race_window=_get_float("META_RACE_WINDOW", 5.0, minimum=0.0),
        log_level=log_level,
        log_json=log_json,
        log_file=log_file,
        require_auth=_get_bool("REQUIRE_AUTH", default=True),
    )


__all__ = ["Settings", "get_settings", "PROJECT_ROOT"]
