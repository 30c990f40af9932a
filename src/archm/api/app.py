# src/archm/api/app.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from archm.config import Settings, load_settings
from archm.engine.pipeline import PipelineRunner
from archm.engine.planner import RunPlanner
from archm.logging import configure_logging, get_logger
from archm.storage import SQLiteDB, apply_migrations

from .monitor import PipelineMonitor
from .routes import router

_LOG = get_logger(__name__)


def build_pipeline(settings: Settings) -> tuple[PipelineRunner, PipelineMonitor, RunPlanner]:
    """One runner per process; the monitor is its only listener."""
    runner = PipelineRunner(reset_grace_s=settings.reset_grace_s)
    monitor = PipelineMonitor()
    runner.set_listener(monitor)
    planner = RunPlanner(
        runner,
        default_seven_zip=settings.default_seven_zip,
        kill_grace_s=settings.kill_grace_s,
        wait_poll_s=settings.wait_poll_s,
    )
    return runner, monitor, planner


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup:
    - env config and logging
    - preferences schema migrated before the first request
    - pipeline objects parked on app.state for the deps module

    Shutdown cancels whatever is still running and releases the worker thread.
    """
    settings = load_settings()
    configure_logging(settings.log_level)

    db = SQLiteDB(settings.db_path)
    with db.session() as conn:
        applied = apply_migrations(conn)

    runner, monitor, planner = build_pipeline(settings)
    app.state.settings = settings
    app.state.db = db
    app.state.runner = runner
    app.state.monitor = monitor
    app.state.planner = planner
    _LOG.info("archm ready (db=%s, %d migration(s) applied).", settings.db_path, applied)

    try:
        yield
    finally:
        runner.set_listener(None)
        runner.shutdown()
        _LOG.info("archm stopped.")


def create_app() -> FastAPI:
    api = FastAPI(title="Archive Machine", version="0.1.0", lifespan=lifespan)
    api.include_router(router)
    return api


app = create_app()
