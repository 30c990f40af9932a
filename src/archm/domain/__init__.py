"""
Domain layer for archm.

- states: task / pipeline / destination enums
- models: Pydantic models for settings and API input/output
- errors: domain-level exceptions
"""

from .states import ArchiveType, DestinationMode, PipelineState, RunOutcome, TaskState
from .models import (
    CoreSettings,
    ErrorResponse,
    PipelineEventView,
    PipelineEventsResponse,
    PipelineStatusView,
    PlannedItemView,
    RunPlanView,
    RunRequest,
    TaskView,
)
from .errors import (
    ArchmError,
    ExternalProcessError,
    ResetRequiredError,
    TaskCancelled,
    ValidationError,
)

__all__ = [
    "ArchiveType",
    "DestinationMode",
    "PipelineState",
    "RunOutcome",
    "TaskState",
    "CoreSettings",
    "ErrorResponse",
    "PipelineEventView",
    "PipelineEventsResponse",
    "PipelineStatusView",
    "PlannedItemView",
    "RunPlanView",
    "RunRequest",
    "TaskView",
    "ArchmError",
    "ExternalProcessError",
    "ResetRequiredError",
    "TaskCancelled",
    "ValidationError",
]
