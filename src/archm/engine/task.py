# src/archm/engine/task.py
from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod

from archm.domain.errors import TaskCancelled
from archm.domain.models import TaskView
from archm.domain.states import TaskState

from .runtime import RuntimeToken


class Task(ABC):
    """
    Unit of work executed by the PipelineRunner.

    Exactly two concrete kinds exist: ItemTransferTask and ArchiveDecompressTask.

    State is written by the worker (execute) and by the controller thread
    (on_cancel), so transitions go through _set_state(), which refuses to
    leave a terminal state.
    """

    def __init__(self) -> None:
        self._id = str(uuid.uuid4())
        self._state = TaskState.QUEUED
        self._state_lock = threading.Lock()

    @property
    def id(self) -> str:
        return self._id

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    def state(self) -> TaskState:
        return self._state

    def execute(self, token: RuntimeToken) -> None:
        """
        Runs the task on the pipeline worker.

        Returns normally on success (COMPLETED) or on observed cancellation
        (CANCELLED); raises on any other failure (FAILED).
        """
        self._set_state(TaskState.RUNNING)
        try:
            token.raise_if_cancelled()
            self._run(token)
        except TaskCancelled:
            self._set_state(TaskState.CANCELLED)
            return
        except Exception:
            # The runner decides whether this was a failure or a side effect of cancel.
            self._set_state(TaskState.CANCELLED if token.is_cancelled() else TaskState.FAILED)
            raise
        self._set_state(TaskState.COMPLETED)

    @abstractmethod
    def _run(self, token: RuntimeToken) -> None:
        """Task body. Signals cancellation by raising TaskCancelled (token.checkpoint())."""

    def on_cancel(self) -> None:
        """Out-of-band interruption hook, called from the controller thread."""
        self._set_state(TaskState.CANCELLED)

    def view(self) -> TaskView:
        return TaskView(id=self.id, description=self.description, state=self.state)

    def _set_state(self, new: TaskState) -> bool:
        with self._state_lock:
            if self._state.is_terminal:
                return False
            if new == TaskState.QUEUED or (new == TaskState.RUNNING and self._state != TaskState.QUEUED):
                return False
            self._state = new
            return True

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.description!r} {self.state}>"
