# src/archm/api/deps.py
from __future__ import annotations

from typing import Iterator

from fastapi import Depends, Request

from archm.engine.pipeline import PipelineRunner
from archm.engine.planner import RunPlanner
from archm.storage import SettingsRepo, SQLiteDB

from .monitor import PipelineMonitor

# Everything below is created once by the lifespan handler and parked on
# app.state; the pipeline objects are process-wide singletons.


def get_db(request: Request) -> SQLiteDB:
    return request.app.state.db  # type: ignore[attr-defined]


def get_settings_repo(db: SQLiteDB = Depends(get_db)) -> Iterator[SettingsRepo]:
    """Repo bound to a connection that lives for one request."""
    with db.session() as conn:
        yield SettingsRepo(conn)


def get_runner(request: Request) -> PipelineRunner:
    return request.app.state.runner  # type: ignore[attr-defined]


def get_planner(request: Request) -> RunPlanner:
    return request.app.state.planner  # type: ignore[attr-defined]


def get_monitor(request: Request) -> PipelineMonitor:
    return request.app.state.monitor  # type: ignore[attr-defined]
