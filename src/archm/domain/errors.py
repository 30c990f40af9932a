# src/archm/domain/errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


@dataclass
class ArchmError(Exception):
    """
    Error raised by planning, settings and task code.

    Notes:
    - `code` is the stable machine-readable identifier returned by the API.
    - `http_status` is the status the API answers with for this kind of error.
    - `details` carries the offending values (paths, exit codes).
    """
    http_status: ClassVar[int] = 400

    message: str
    code: str = "ARCHM_ERROR"
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": dict(self.details)}


@dataclass
class ValidationError(ArchmError):
    """Bad source/destination roots or an unsupported archive."""
    code: str = "VALIDATION_ERROR"


@dataclass
class ResetRequiredError(ArchmError):
    """The last run was cancelled or failed and reset() has not been called yet."""
    http_status: ClassVar[int] = 409

    code: str = "RESET_REQUIRED"


@dataclass
class ExternalProcessError(ArchmError):
    """The decompressor could not be started or exited non-zero."""
    code: str = "EXTERNAL_PROCESS_ERROR"


class TaskCancelled(Exception):
    """
    Raised at a poll point once cancellation was requested.

    Not an ArchmError: cancellation is a terminal outcome, not a failure.
    """

    def __init__(self, message: str = "Task cancelled") -> None:
        super().__init__(message)
