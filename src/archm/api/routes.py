# src/archm/api/routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from archm.domain.errors import ArchmError
from archm.domain.models import (
    CoreSettings,
    ErrorResponse,
    PipelineEventsResponse,
    PipelineStatusView,
    RunPlanView,
    RunRequest,
)
from archm.engine.pipeline import PipelineRunner
from archm.engine.planner import RunPlanner
from archm.logging import get_logger
from archm.storage import SettingsRepo

from .deps import get_monitor, get_planner, get_runner, get_settings_repo
from .monitor import PipelineMonitor

_LOG = get_logger(__name__)
router = APIRouter()


def _error_response(err: ArchmError) -> JSONResponse:
    payload = ErrorResponse.model_validate(err.to_payload()).model_dump()
    return JSONResponse(status_code=err.http_status, content=payload)


@router.get("/healthz")
def healthz() -> dict:
    return {"ok": True}


@router.get("/settings", response_model=CoreSettings)
def get_preferences(repo: SettingsRepo = Depends(get_settings_repo)):
    return repo.load()


@router.put("/settings", response_model=CoreSettings)
def put_preferences(
    settings: CoreSettings,
    repo: SettingsRepo = Depends(get_settings_repo),
):
    repo.save(settings)
    return repo.load()


@router.post("/runs", response_model=RunPlanView, status_code=201)
def start_run(
    request: RunRequest,
    planner: RunPlanner = Depends(get_planner),
    repo: SettingsRepo = Depends(get_settings_repo),
):
    """
    Validate the request, queue one transfer per level-0 item (plus chained
    decompression) and remember the request as the last used preferences.

    Notes:
    - 400 for invalid source/destination, 409 while the pipeline awaits reset.
    """
    try:
        plan = planner.start(request)
    except ArchmError as e:
        _LOG.info("Run rejected (%s): %s", e.code, e.message)
        return _error_response(e)
    except OSError as e:
        # e.g. an unreadable source root while listing level-0 items
        _LOG.warning("Failed to plan run: %s", e)
        return _error_response(ArchmError(f"Failed to start pipeline: {e}", code="PLANNING_FAILED"))

    repo.save(request.to_settings())
    return plan.view()


@router.get("/pipeline", response_model=PipelineStatusView)
def pipeline_status(runner: PipelineRunner = Depends(get_runner)):
    return runner.snapshot()


@router.post("/pipeline/pause", response_model=PipelineStatusView)
def pause_pipeline(runner: PipelineRunner = Depends(get_runner)):
    runner.pause()
    return runner.snapshot()


@router.post("/pipeline/resume", response_model=PipelineStatusView)
def resume_pipeline(runner: PipelineRunner = Depends(get_runner)):
    runner.resume()
    return runner.snapshot()


@router.post("/pipeline/cancel", response_model=PipelineStatusView)
def cancel_pipeline(runner: PipelineRunner = Depends(get_runner)):
    runner.cancel()
    return runner.snapshot()


@router.post("/pipeline/reset", response_model=PipelineStatusView)
def reset_pipeline(
    runner: PipelineRunner = Depends(get_runner),
    monitor: PipelineMonitor = Depends(get_monitor),
):
    runner.reset()
    monitor.clear()
    return runner.snapshot()


@router.get("/pipeline/events", response_model=PipelineEventsResponse)
def pipeline_events(
    limit: int = Query(default=100, ge=1, le=500),
    monitor: PipelineMonitor = Depends(get_monitor),
):
    events = monitor.recent(limit)
    return PipelineEventsResponse(events=events, total=len(events))
