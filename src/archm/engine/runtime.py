# src/archm/engine/runtime.py
from __future__ import annotations

import threading

from archm.domain.errors import TaskCancelled


class RuntimeToken:
    """
    Cooperative cancellation flag plus a pause gate, shared by the pipeline
    runner (writer) and the task executing on the worker (reader).

    Contract:
    - the cancellation flag is set once and never cleared
    - request_cancel() and resume() wake every thread blocked in await_if_paused()
    - await_if_paused() returns immediately once cancellation was requested

    One instance per pipeline run; never reused across runs.
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._cond = threading.Condition()
        self._paused = False

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def is_paused(self) -> bool:
        with self._cond:
            return self._paused

    def request_cancel(self) -> None:
        self._cancelled.set()
        self.resume()

    def pause(self) -> None:
        with self._cond:
            self._paused = True

    def resume(self) -> None:
        with self._cond:
            self._paused = False
            self._cond.notify_all()

    def await_if_paused(self) -> None:
        if self.is_cancelled():
            return
        with self._cond:
            while self._paused and not self.is_cancelled():
                self._cond.wait()

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled():
            raise TaskCancelled()

    def checkpoint(self) -> None:
        """Poll point: block while paused, then raise TaskCancelled if cancelled."""
        self.await_if_paused()
        self.raise_if_cancelled()
