"""Dotenv loading for local runs of the client.

`MATCHDAY_ENV_FILE` points at an explicit file; otherwise `.env` in the
project root is read and `.env.local` beside it is layered on top.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

ENV_FILE_VAR = "MATCHDAY_ENV_FILE"


def load_env(path: Path | None = None) -> Dict[str, str]:
    """Apply dotenv files to `os.environ` and return what was set.

    Variables exported by the shell always win; `.env.local` may replace
    values that came from `.env`.
    """
    shell_keys = frozenset(os.environ)
    applied: Dict[str, str] = {}

    explicit = path or _explicit_env_path()
    files = [explicit] if explicit is not None else [_default_env_path(), _default_env_path().with_name(".env.local")]
    for env_file in files:
        if not env_file.is_file():
            continue
        for key, value in parse_env_lines(env_file.read_text(encoding="utf-8").splitlines()):
            if key in shell_keys:
                continue
            os.environ[key] = value
            applied[key] = value
    return applied


def parse_env_lines(lines) -> Iterator[Tuple[str, str]]:
    for raw_line in lines:
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            yield key, _clean_value(value.strip())


def _explicit_env_path() -> Optional[Path]:
    raw = os.getenv(ENV_FILE_VAR, "").strip()
    return Path(raw).expanduser() if raw else None


def _default_env_path() -> Path:
    return Path(__file__).resolve().parents[2] / ".env"


def _clean_value(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    # Unquoted values may carry a trailing comment.
    if " #" in value:
        value = value.split(" #", 1)[0].rstrip()
    return value


__all__ = ["ENV_FILE_VAR", "load_env", "parse_env_lines"]
