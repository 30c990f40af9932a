# src/archm/domain/states.py
from __future__ import annotations

from enum import StrEnum


class TaskState(StrEnum):
    """
    Lifecycle of a single task.

    Transitions are QUEUED -> RUNNING -> one terminal state
    (COMPLETED, FAILED, CANCELLED). No state is revisited.
    """

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELLED)


class PipelineState(StrEnum):
    """
    Pipeline runner state machine.

      IDLE --submit--> RUNNING <--pause/resume--> PAUSED
      RUNNING/PAUSED --queue drained--> IDLE
      any --cancel / failure--> RESET_REQUIRED --reset--> IDLE
    """

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    RESET_REQUIRED = "RESET_REQUIRED"


class RunOutcome(StrEnum):
    SUCCEEDED = "SUCCEEDED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class DestinationMode(StrEnum):
    """Which timestamp picks the month/year bucket of a level-0 item."""

    TRANSFER_DATE = "TRANSFER_DATE"
    CREATION_DATE = "CREATION_DATE"
    LAST_MODIFIED_DATE = "LAST_MODIFIED_DATE"


class ArchiveType(StrEnum):
    RAR = ".rar"
    SEVEN_Z = ".7z"
    ZIP = ".zip"

    @classmethod
    def is_supported_name(cls, name: str) -> bool:
        lowered = name.lower()
        return any(lowered.endswith(t.value) for t in cls)
