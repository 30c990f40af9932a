# src/archm/engine/pipeline.py
from __future__ import annotations

import threading
from collections import deque
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, wait
from typing import Iterable, Optional

from archm.domain.errors import ResetRequiredError, TaskCancelled
from archm.domain.models import PipelineStatusView
from archm.domain.states import PipelineState, RunOutcome
from archm.logging import get_logger

from .runtime import RuntimeToken
from .task import Task

_LOG = get_logger(__name__)


class PipelineListener:
    """
    Lifecycle callbacks. Exactly one of the three pipeline-finished hooks is
    emitted per run.

    Hooks run on the thread that caused the transition (worker or controller)
    while the runner lock is held; they must not block.
    """

    def on_pipeline_started(self) -> None:
        pass

    def on_task_started(self, task: Task) -> None:
        pass

    def on_task_finished(self, task: Task) -> None:
        pass

    def on_pipeline_succeeded(self) -> None:
        pass

    def on_pipeline_cancelled(self) -> None:
        pass

    def on_pipeline_failed(self, error: BaseException) -> None:
        pass


class PipelineRunner:
    """
    Sequential task runner:
    - FIFO queue, one dedicated worker thread, at most one task in flight
    - state machine IDLE -> RUNNING <-> PAUSED -> (IDLE | RESET_REQUIRED)
    - pause/cancel are delivered to the running task through the RuntimeToken

    All public methods serialize on one lock; they race with the worker
    finishing a task. Each worker job carries the run generation it was
    scheduled under so that a job outliving reset() cannot touch the new run.
    """

    def __init__(self, *, reset_grace_s: float = 2.0) -> None:
        self._reset_grace_s = reset_grace_s
        self._lock = threading.RLock()
        self._queue: deque[Task] = deque()
        self._listener: Optional[PipelineListener] = None

        self._state = PipelineState.IDLE
        self._cancelling = False
        self._finished_emitted = False

        self._active_task: Optional[Task] = None
        self._active_future: Optional[Future[None]] = None
        # job of a run discarded by reset() that may still be executing
        self._previous_future: Optional[Future[None]] = None

        self._generation = 0
        self._submitted = 0
        self._finished = 0
        self._last_outcome: Optional[RunOutcome] = None
        self._last_error: Optional[str] = None

        self._executor = self._fresh_executor()
        self._token = RuntimeToken()

    # -------------------------
    # Public API
    # -------------------------

    def set_listener(self, listener: Optional[PipelineListener]) -> None:
        with self._lock:
            self._listener = listener

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def token(self) -> RuntimeToken:
        with self._lock:
            return self._token

    def submit(self, task: Task) -> None:
        self.submit_all([task])

    def submit_all(self, tasks: Iterable[Task]) -> None:
        """
        Enqueues tasks atomically; starts a run when IDLE.

        Raises ResetRequiredError while RESET_REQUIRED.
        """
        batch = list(tasks)
        with self._lock:
            if self._state == PipelineState.RESET_REQUIRED:
                raise ResetRequiredError("reset() required before submitting new tasks")
            if not batch:
                return

            self._queue.extend(batch)
            self._submitted += len(batch)
            _LOG.debug("Queued %d task(s); state=%s", len(batch), self._state)

            if self._state == PipelineState.IDLE:
                self._start_pipeline()

    def pause(self) -> None:
        with self._lock:
            if self._state != PipelineState.RUNNING:
                return
            self._state = PipelineState.PAUSED
            self._token.pause()
            _LOG.info("Pipeline paused.")

    def resume(self) -> None:
        with self._lock:
            if self._state != PipelineState.PAUSED:
                return
            self._state = PipelineState.RUNNING
            self._token.resume()
            _LOG.info("Pipeline resumed.")

    def cancel(self) -> None:
        with self._lock:
            self._cancelling = True

            if self._state == PipelineState.IDLE:
                # Nothing running; still require reset so callers see one deterministic outcome.
                self._token.request_cancel()
                self._finished_emitted = False
                self._finish_cancelled()
                return

            dropped = len(self._queue)
            self._queue.clear()
            self._token.request_cancel()

            task = self._active_task
            if task is not None:
                try:
                    task.on_cancel()
                except Exception:
                    _LOG.exception("Cancel hook of %r raised (continuing).", task)

            fut = self._active_future
            if fut is not None:
                fut.cancel()

            _LOG.info("Cancel requested; dropped %d queued task(s).", dropped)
            self._finish_cancelled()

    def reset(self) -> None:
        """
        Always legal. Stops the current run, discards queued and active tasks
        and returns to IDLE with a fresh RuntimeToken and worker.

        Waits up to reset_grace_s for a task still inside a step that does not
        poll the token. The first task of the next run waits on the same bound,
        so a submit racing the reset cannot overlap with it either.
        """
        with self._lock:
            self._generation += 1

            old_executor = self._executor
            old_future = self._active_future
            if old_future is not None and not old_future.done():
                self._previous_future = old_future
            self._token.request_cancel()
            task = self._active_task
            if task is not None and not task.state.is_terminal:
                try:
                    task.on_cancel()
                except Exception:
                    _LOG.exception("Cancel hook of %r raised during reset (continuing).", task)

            self._queue.clear()
            self._active_task = None
            self._active_future = None
            self._cancelling = False
            self._finished_emitted = False
            self._submitted = 0
            self._finished = 0
            self._last_outcome = None
            self._last_error = None
            self._state = PipelineState.IDLE

            self._executor = self._fresh_executor()
            self._token = RuntimeToken()

        old_executor.shutdown(wait=False, cancel_futures=True)
        if old_future is not None:
            self._await_previous(old_future)
        _LOG.info("Pipeline reset.")

    def shutdown(self) -> None:
        """Releases the worker; used on process shutdown."""
        self.reset()
        with self._lock:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def snapshot(self) -> PipelineStatusView:
        with self._lock:
            task = self._active_task
            return PipelineStatusView(
                state=self._state,
                submitted=self._submitted,
                finished=self._finished,
                active_task=task.view() if task is not None else None,
                last_outcome=self._last_outcome,
                last_error=self._last_error,
            )

    # -------------------------
    # Scheduling (lock held)
    # -------------------------

    def _start_pipeline(self) -> None:
        self._cancelling = False
        self._finished_emitted = False
        self._last_outcome = None
        self._last_error = None
        self._finished = 0
        self._submitted = len(self._queue)
        self._token = RuntimeToken()
        self._state = PipelineState.RUNNING

        _LOG.info("Pipeline started with %d task(s).", self._submitted)
        self._emit("on_pipeline_started")
        self._schedule_next()

    def _schedule_next(self) -> None:
        if self._cancelling or self._token.is_cancelled():
            self._finish_cancelled()
            return

        if not self._queue:
            self._finish_success()
            return

        task = self._queue.popleft()
        previous, self._previous_future = self._previous_future, None
        self._active_task = task
        self._active_future = self._executor.submit(self._run_task, task, self._token, self._generation, previous)

    def _run_task(
        self,
        task: Task,
        token: RuntimeToken,
        generation: int,
        previous: Optional[Future[None]] = None,
    ) -> None:
        if previous is not None:
            self._await_previous(previous)

        with self._lock:
            if generation != self._generation:
                return
            _LOG.info("Running task %s: %s", task.id, task.description)
            self._emit("on_task_started", task)

        try:
            task.execute(token)
        except Exception as e:
            with self._lock:
                if generation != self._generation:
                    _LOG.debug("Task %s raised after reset: %r", task.id, e)
                    return
                self._finished += 1
                self._active_task = None
                self._active_future = None
                self._emit("on_task_finished", task)

                if self._is_cancellation(e):
                    _LOG.info("Task %s stopped by cancellation.", task.id)
                    self._finish_cancelled()
                else:
                    _LOG.error("Task %s failed: %s", task.id, e, exc_info=e)
                    self._finish_failed(e)
            return

        with self._lock:
            if generation != self._generation:
                return
            self._finished += 1
            self._active_task = None
            self._active_future = None
            _LOG.info("Task %s finished: %s", task.id, task.state)
            self._emit("on_task_finished", task)
            self._schedule_next()

    def _await_previous(self, fut: Future[None]) -> None:
        """Blocks (without the lock) until a discarded job has returned, at most reset_grace_s."""
        done, _ = wait([fut], timeout=self._reset_grace_s)
        if not done:
            _LOG.warning("Discarded task still running %.1fs after reset; not waiting longer.", self._reset_grace_s)

    def _is_cancellation(self, error: BaseException) -> bool:
        if self._cancelling or self._token.is_cancelled():
            return True

        cur: Optional[BaseException] = error
        seen: set[int] = set()
        while cur is not None and id(cur) not in seen:
            if isinstance(cur, (TaskCancelled, CancelledError)):
                return True
            seen.add(id(cur))
            cur = cur.__cause__ or cur.__context__
        return False

    # -------------------------
    # Terminal transitions (lock held)
    # -------------------------

    def _finish_success(self) -> None:
        if self._finished_emitted:
            return
        self._finished_emitted = True
        # Success returns to IDLE so the next submit starts a new run without reset().
        self._state = PipelineState.IDLE
        self._active_task = None
        self._active_future = None
        self._last_outcome = RunOutcome.SUCCEEDED
        _LOG.info("Pipeline finished: %d task(s) succeeded.", self._finished)
        self._emit("on_pipeline_succeeded")

    def _finish_cancelled(self) -> None:
        if self._finished_emitted:
            return
        self._finished_emitted = True
        self._state = PipelineState.RESET_REQUIRED
        self._last_outcome = RunOutcome.CANCELLED
        _LOG.info("Pipeline cancelled; reset required.")
        self._emit("on_pipeline_cancelled")

    def _finish_failed(self, error: BaseException) -> None:
        if self._finished_emitted:
            return
        self._finished_emitted = True
        self._state = PipelineState.RESET_REQUIRED
        self._last_outcome = RunOutcome.FAILED
        self._last_error = str(error) or type(error).__name__
        _LOG.warning("Pipeline failed; reset required: %s", self._last_error)
        self._emit("on_pipeline_failed", error)

    def _emit(self, hook: str, *args: object) -> None:
        listener = self._listener
        if listener is None:
            return
        try:
            getattr(listener, hook)(*args)
        except Exception:
            _LOG.exception("Pipeline listener hook %s raised (continuing).", hook)

    @staticmethod
    def _fresh_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="archm-worker")
