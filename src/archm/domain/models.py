from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .states import DestinationMode, PipelineState, RunOutcome, TaskState


PathText = Annotated[str, Field(max_length=4096)]

DEFAULT_SEVEN_ZIP = "7z"


class CoreSettings(BaseModel):
    """
    Flat record of user preferences.

    Kept small and backward-compatible: every field has a default so a
    partially populated store still loads.
    """
    model_config = ConfigDict(extra="forbid")

    last_source_directory: PathText = ""
    last_destination_directory: PathText = ""
    decompression_enabled: bool = False
    skip_shortcuts_enabled: bool = False
    partition_item_limit: int = 0
    destination_mode: DestinationMode = DestinationMode.TRANSFER_DATE
    seven_zip_path: PathText = DEFAULT_SEVEN_ZIP

    @field_validator("partition_item_limit")
    @classmethod
    def _clamp_partition_limit(cls, v: int) -> int:
        return max(0, v)

    @field_validator("last_source_directory", "last_destination_directory", "seven_zip_path")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class RunRequest(BaseModel):
    """
    API input model for starting a transfer run.

    partition_item_limit <= 0 disables partitioning.
    """
    model_config = ConfigDict(extra="forbid")

    source_directory: PathText
    destination_directory: PathText
    destination_mode: DestinationMode = DestinationMode.TRANSFER_DATE
    skip_shortcuts: bool = False
    decompression_enabled: bool = False
    partition_item_limit: int = 0
    seven_zip_path: Optional[PathText] = None

    def to_settings(self) -> CoreSettings:
        return CoreSettings(
            last_source_directory=self.source_directory,
            last_destination_directory=self.destination_directory,
            decompression_enabled=self.decompression_enabled,
            skip_shortcuts_enabled=self.skip_shortcuts,
            partition_item_limit=self.partition_item_limit,
            destination_mode=self.destination_mode,
            # a blank path means "use the default executable"
            seven_zip_path=(self.seven_zip_path or "").strip() or DEFAULT_SEVEN_ZIP,
        )


class PlannedItemView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str
    destination: str
    partition: Optional[str] = None
    decompress: bool = False


class RunPlanView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[PlannedItemView]
    task_count: int


class TaskView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    description: str
    state: TaskState


class PipelineStatusView(BaseModel):
    """
    API output model for the pipeline runner.

    submitted/finished count tasks of the current (or last) run.
    """
    model_config = ConfigDict(extra="forbid")

    state: PipelineState
    submitted: int
    finished: int
    active_task: Optional[TaskView] = None
    last_outcome: Optional[RunOutcome] = None
    last_error: Optional[str] = None


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    code: str
    details: dict = Field(default_factory=dict)


class PipelineEventView(BaseModel):
    """One lifecycle notification, as recorded for the presentation layer."""
    model_config = ConfigDict(extra="forbid")

    at: int
    event: str
    task_id: Optional[str] = None
    description: Optional[str] = None
    detail: Optional[str] = None


class PipelineEventsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    events: list[PipelineEventView]
    total: int
