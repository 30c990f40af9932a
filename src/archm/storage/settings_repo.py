# src/archm/storage/settings_repo.py
from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from typing import Any

from archm.domain.models import CoreSettings
from archm.domain.states import DestinationMode
from archm.logging import get_logger

from .db import transaction

_LOG = get_logger(__name__)

# Stable storage keys; renaming a model field must not orphan stored values.
K_LAST_SOURCE = "lastSourceDirectory"
K_LAST_DEST = "lastDestinationDirectory"
K_DECOMPRESS = "decompressionEnabled"
K_SKIP_SHORTCUTS = "skipShortcutsEnabled"
K_PARTITION_LIMIT = "partitionItemLimit"
K_MODE = "destinationMode"
K_SEVEN_ZIP = "sevenZipPath"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SettingsRepo:
    """
    Persists CoreSettings as flat key/value rows.

    Loading is backward compatible: missing keys and unreadable values fall
    back to the CoreSettings defaults.
    """
    conn: sqlite3.Connection

    def load(self) -> CoreSettings:
        rows = self.conn.execute("SELECT key, value FROM settings;").fetchall()
        stored = {r["key"]: r["value"] for r in rows}
        defaults = CoreSettings()

        return CoreSettings(
            last_source_directory=stored.get(K_LAST_SOURCE, defaults.last_source_directory),
            last_destination_directory=stored.get(K_LAST_DEST, defaults.last_destination_directory),
            decompression_enabled=_as_bool(stored.get(K_DECOMPRESS), defaults.decompression_enabled),
            skip_shortcuts_enabled=_as_bool(stored.get(K_SKIP_SHORTCUTS), defaults.skip_shortcuts_enabled),
            partition_item_limit=_as_int(stored.get(K_PARTITION_LIMIT), defaults.partition_item_limit),
            destination_mode=_as_mode(stored.get(K_MODE), defaults.destination_mode),
            seven_zip_path=stored.get(K_SEVEN_ZIP, defaults.seven_zip_path),
        )

    def save(self, settings: CoreSettings) -> None:
        values: dict[str, Any] = {
            K_LAST_SOURCE: settings.last_source_directory,
            K_LAST_DEST: settings.last_destination_directory,
            K_DECOMPRESS: "true" if settings.decompression_enabled else "false",
            K_SKIP_SHORTCUTS: "true" if settings.skip_shortcuts_enabled else "false",
            K_PARTITION_LIMIT: str(max(0, settings.partition_item_limit)),
            K_MODE: settings.destination_mode.value,
            K_SEVEN_ZIP: settings.seven_zip_path,
        }
        ts = now_ms()
        with transaction(self.conn):
            self.conn.executemany(
                """
                INSERT INTO settings(key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at;
                """,
                [(k, v, ts) for k, v in values.items()],
            )
        _LOG.debug("Saved %d setting(s).", len(values))


def _as_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _as_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        _LOG.warning("Ignoring stored %s=%r (not an int).", K_PARTITION_LIMIT, raw)
        return default


def _as_mode(raw: str | None, default: DestinationMode) -> DestinationMode:
    if raw is None:
        return default
    try:
        return DestinationMode(raw)
    except ValueError:
        _LOG.warning("Ignoring stored %s=%r (unknown mode).", K_MODE, raw)
        return default
