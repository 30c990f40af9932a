# src/archm/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENV_PREFIX = "ARCHM_"


def _env(name: str) -> Optional[str]:
    """Value of ARCHM_<name>; unset and blank are the same."""
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _get_env_str(name: str, default: str) -> str:
    raw = _env(name)
    return default if raw is None else raw


def _get_env_int(name: str, default: int, *, low: int = 1, high: Optional[int] = None) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name} must be an int, got: {raw!r}") from e
    if value < low or (high is not None and value > high):
        bounds = f">= {low}" if high is None else f"between {low} and {high}"
        raise ValueError(f"{ENV_PREFIX}{name} must be {bounds}, got: {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Process configuration, read once at startup.

    User preferences (source/destination, modes, 7z path) are not here; they
    live in the SQLite store and come with each run request.
    """
    db_path: Path

    # decompressor shutdown: terminate, wait kill_grace_ms, kill
    kill_grace_ms: int
    # exit-wait slice between cancellation polls
    wait_poll_ms: int
    # how long reset() waits for a task stuck in a non-polling step
    reset_grace_ms: int
    # used when a run request leaves seven_zip_path blank
    default_seven_zip: str

    host: str
    port: int
    log_level: str

    @property
    def kill_grace_s(self) -> float:
        return self.kill_grace_ms / 1000.0

    @property
    def wait_poll_s(self) -> float:
        return self.wait_poll_ms / 1000.0

    @property
    def reset_grace_s(self) -> float:
        return self.reset_grace_ms / 1000.0


def load_settings() -> Settings:
    """
    Builds Settings from ARCHM_* env vars.

      DB_PATH        ./var/archm.db
      KILL_GRACE_MS  300
      WAIT_POLL_MS   100
      RESET_GRACE_MS 2000
      SEVEN_ZIP      7z
      HOST           127.0.0.1
      PORT           8000
      LOG_LEVEL      info

    Raises ValueError on malformed or out-of-range numbers.
    """
    return Settings(
        db_path=Path(_get_env_str("DB_PATH", "./var/archm.db")).expanduser(),
        kill_grace_ms=_get_env_int("KILL_GRACE_MS", 300),
        wait_poll_ms=_get_env_int("WAIT_POLL_MS", 100),
        reset_grace_ms=_get_env_int("RESET_GRACE_MS", 2000),
        default_seven_zip=_get_env_str("SEVEN_ZIP", "7z"),
        host=_get_env_str("HOST", "127.0.0.1"),
        port=_get_env_int("PORT", 8000, high=65535),
        log_level=_get_env_str("LOG_LEVEL", "info").lower(),
    )
