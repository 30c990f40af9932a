# src/archm/storage/migrations.py
from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import NamedTuple

from archm.logging import get_logger

from .db import transaction

_LOG = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

_NAME_RE = re.compile(r"(\d+)_[\w-]+\.sql")


class _Script(NamedTuple):
    version: int
    path: Path


def schema_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version;").fetchone()[0])


def apply_migrations(conn: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR) -> int:
    """
    Brings the preferences schema up to date; returns the number of scripts run.

    Notes:
    - Scripts are NNN_name.sql files shipped in archm/storage/migrations.
    - The applied version lives in PRAGMA user_version, so no bookkeeping table.
    - Each script and its version bump commit together.
    """
    if not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations dir not found: {migrations_dir}")

    current = schema_version(conn)
    pending = [s for s in _scripts(migrations_dir) if s.version > current]

    for script in pending:
        _LOG.info("Migrating preferences schema %d -> %d (%s)", current, script.version, script.path.name)
        with transaction(conn):
            for statement in _statements(script.path.read_text(encoding="utf-8")):
                conn.execute(statement)
            # PRAGMA does not accept bound parameters
            conn.execute(f"PRAGMA user_version = {script.version:d};")
        current = script.version

    if not pending:
        _LOG.debug("Preferences schema at version %d.", current)
    return len(pending)


def _scripts(migrations_dir: Path) -> list[_Script]:
    found = []
    for path in migrations_dir.iterdir():
        m = _NAME_RE.fullmatch(path.name)
        if m:
            found.append(_Script(int(m.group(1)), path))
    return sorted(found)


def _statements(sql: str) -> list[str]:
    """Splits a script on ';'. Scripts must not contain ';' inside literals or triggers."""
    return [s.strip() for s in sql.split(";") if s.strip()]
