# src/archm/storage/__init__.py
"""
Storage layer for archm (SQLite).

- db: connection factory + pragmas + transaction helper
- migrations: lightweight SQL migrations runner
- settings_repo: preference persistence
"""

from .db import SQLiteDB
from .migrations import apply_migrations
from .settings_repo import SettingsRepo

__all__ = ["SQLiteDB", "apply_migrations", "SettingsRepo"]
