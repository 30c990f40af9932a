# src/archm/api/monitor.py
from __future__ import annotations

import threading
import time
from collections import deque
from typing import Optional

from archm.domain.models import PipelineEventView
from archm.engine.pipeline import PipelineListener
from archm.engine.task import Task
from archm.logging import get_logger

_LOG = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class PipelineMonitor(PipelineListener):
    """
    Listener that records lifecycle notifications for polling clients.

    Keeps the most recent `capacity` events in memory.
    """

    def __init__(self, capacity: int = 500) -> None:
        self._events: deque[PipelineEventView] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def recent(self, limit: int = 100) -> list[PipelineEventView]:
        with self._lock:
            events = list(self._events)
        return events[-limit:] if limit > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def _record(self, event: str, task: Optional[Task] = None, detail: Optional[str] = None) -> None:
        view = PipelineEventView(
            at=now_ms(),
            event=event,
            task_id=task.id if task is not None else None,
            description=task.description if task is not None else None,
            detail=detail,
        )
        with self._lock:
            self._events.append(view)

    def on_pipeline_started(self) -> None:
        self._record("started")

    def on_task_started(self, task: Task) -> None:
        self._record("task_started", task)

    def on_task_finished(self, task: Task) -> None:
        self._record("task_finished", task, detail=task.state.value)

    def on_pipeline_succeeded(self) -> None:
        self._record("succeeded")

    def on_pipeline_cancelled(self) -> None:
        self._record("cancelled")

    def on_pipeline_failed(self, error: BaseException) -> None:
        self._record("failed", detail=str(error) or type(error).__name__)
