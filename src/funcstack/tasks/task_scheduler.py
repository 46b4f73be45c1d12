# src/funcstack/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

Admission, completion tracking and lifecycle on top of TaskStore:
- consume() moves eligible tasks from pending to in_flight and hands each
  to the dispatcher (the event loop by default),
- every terminal transition goes through _on_task_terminal(), which
  updates the collections, notifies observers, re-triggers consume()
  and detects the end of the run.

CONCURRENT tasks overlap freely. A BARRIER task waits for an empty
in_flight and keeps it to itself until it settles.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from ..config import StackOptions
from ..core.ports import Dispatcher
from ..errors import SchedulerConsistencyError
from .task_context import Dispatch, DispatchState
from .task_models import (
    AdmissionMode,
    Collection,
    Outcome,
    Placement,
    StatusNotification,
    StatusSnapshot,
    Task,
    TaskDescriptor,
)
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class FuncStack(TaskStore):
    """
    Runs registered callables with async/defer admission.

    `options` may be a StackOptions, a mapping of option names, a bare
    callable (used as on_completed) or None. `tasks` is an optional initial
    add() argument. Without an explicit `dispatcher`, tasks are scheduled
    on the running asyncio loop.
    """

    def __init__(
        self,
        options: Any = None,
        tasks: Any = None,
        *,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        super().__init__(StackOptions.coerce(options))
        self._dispatcher = dispatcher
        self._paused = False

        # Completion fires once per run; new work or start() re-arms it.
        self._completion_armed = True
        self._last_notification = StatusNotification()
        self._last_mode: AdmissionMode | None = None
        self._waiters: list[asyncio.Future[StatusSnapshot]] = []

        if tasks is not None:
            self.add(tasks)

    def _trace(self, msg: str, *args: Any) -> None:
        if self.options.debug:
            logger.debug(msg, *args)

    def _notify(self, handler: Callable[..., Any] | None, *args: Any) -> None:
        """Call an observer. Its exceptions are logged, never raised."""
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            logger.exception("Observer %s failed", getattr(handler, "__name__", handler))

    def _register(
        self,
        entries: list[tuple[Callable[..., Any], Placement]],
        mode: AdmissionMode | str | None,
    ) -> list[Task]:
        created = super()._register(entries, mode)
        with self._lock:
            self._completion_armed = True
        return created

    # ---- admission ----

    def _get_dispatcher(self) -> Dispatcher:
        if self._dispatcher is not None:
            return self._dispatcher
        return asyncio.get_running_loop()

    def _check_in_flight(self) -> None:
        if len(self._in_flight) > 1 and any(t.mode is AdmissionMode.BARRIER for t in self._in_flight):
            ids = [(t.sequence_id, t.mode.value) for t in self._in_flight]
            raise SchedulerConsistencyError(f"barrier task shares in_flight with others: {ids}")

    def can_admit_next(self) -> bool:
        """
        True when in_flight is empty, or when both the head of pending and
        the first in-flight task are CONCURRENT.
        """
        with self._lock:
            if not self._in_flight:
                return True
            if not self._pending:
                return False
            self._check_in_flight()
            return (
                self._pending[0].mode is AdmissionMode.CONCURRENT
                and self._in_flight[0].mode is AdmissionMode.CONCURRENT
            )

    def consume(self) -> int:
        """
        Admit pending tasks until admission is refused. Returns how many
        were admitted (0 while stopped).

        Call this yourself when options.manual_consume is set.
        """
        with self._lock:
            if self._paused:
                self._trace("consume: stopped, nothing admitted")
                return 0
            if not self._pending:
                return 0

            dispatcher = self._get_dispatcher()
            admitted = 0
            while self._pending:
                head = self._pending[0]
                if not self.can_admit_next():
                    self._trace(
                        "consume: #%s (%s) waits for %d in-flight",
                        head.sequence_id, head.mode.value, len(self._in_flight),
                    )
                    break

                task = self._pending.popleft()
                self._in_flight.append(task)
                dispatch = Dispatch(self, task)
                task.dispatch = dispatch
                self._trace("consume: admitted #%s (%s)", task.sequence_id, task.mode.value)
                dispatcher.call_soon(dispatch.run)
                admitted += 1
            return admitted

    # ---- completion tracking ----

    def settle(self, dispatch: Dispatch, notification: StatusNotification) -> bool:
        """
        Resolution entry point used by Dispatch.resolve().

        No-op (False) unless `dispatch` is the task's current admission and
        the task is still in flight.
        """
        with self._lock:
            task = dispatch.task
            if (
                dispatch.state is DispatchState.RESOLVED
                or task.dispatch is not dispatch
                or task not in self._in_flight
            ):
                self._trace("settle: #%s already settled, ignoring %r", task.sequence_id, notification.outcome)
                return False

            dispatch.state = DispatchState.RESOLVED
            self._trace("settle: #%s -> %s", task.sequence_id, notification.outcome)
            self._on_task_terminal(notification, task)
            return True

    def _snapshot(self, notification: StatusNotification, mode: AdmissionMode | None) -> StatusSnapshot:
        return StatusSnapshot(
            outcome=notification.outcome,
            result=notification.result,
            admission_mode=mode,
            counts=self.counts(),
        )

    def _abort_run(self, task: Task, notification: StatusNotification) -> SchedulerConsistencyError:
        # Keep the task accounted for, stop admitting, fail anyone awaiting run().
        self._failed.append(task)
        self._paused = True
        err = SchedulerConsistencyError(
            f"task #{task.sequence_id} settled with unknown outcome {notification.outcome!r}"
        )
        logger.error("Run aborted: %s", err)
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_exception(err)
        self._waiters.clear()
        return err

    def _on_task_terminal(
        self,
        notification: StatusNotification,
        task: Task | None = None,
        collection: Collection | None = None,
    ) -> None:
        """
        Move `task` out of in_flight (or `collection`) into succeeded/failed
        and notify. With an explicit `collection` (cancel) the pipeline is
        not resumed. Without a task, only the completion check runs.
        """
        with self._lock:
            if task is not None:
                self._collection(collection or Collection.IN_FLIGHT).remove(task)
                self._last_notification = notification
                self._last_mode = task.mode

                try:
                    outcome = Outcome(notification.outcome)
                except ValueError:
                    raise self._abort_run(task, notification) from None

                if outcome is Outcome.SUCCESS:
                    self._succeeded.append(task)
                    self._trace("progress: #%s", task.sequence_id)
                    self._notify(self.options.on_progress, self._snapshot(notification, task.mode), task)
                else:
                    self._failed.append(task)
                    self._trace("error: #%s %s %r", task.sequence_id, outcome.value, notification.result)
                    self._notify(self.options.on_error, self._snapshot(notification, task.mode), task)

                if collection is not None:
                    return

                if not self.options.manual_consume:
                    self.consume()

            self._check_completed()

    def _check_completed(self) -> None:
        remaining = len(self._pending) + len(self._in_flight)
        self._trace("completed? %s (remaining=%d)", not remaining, remaining)
        if remaining or not self._completion_armed:
            return

        self._completion_armed = False
        snapshot = self._snapshot(self._last_notification, self._last_mode)
        logger.info(
            "Run complete: %d succeeded, %d failed (total=%d)",
            len(self._succeeded), len(self._failed), self._total,
        )
        self._notify(self.options.on_completed, snapshot)

        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(snapshot)
        self._waiters.clear()

    # ---- lifecycle ----

    def start(self) -> FuncStack:
        """Start (or resume after stop()) the run."""
        with self._lock:
            if self._start_count is None:
                self._start_count = len(self._pending)
            self._paused = False
            self._completion_armed = True

            was_resumed = self._start_count != len(self._pending)
            logger.info(
                "%s %s: %d pending, %d in flight",
                type(self).__name__, "resumed" if was_resumed else "started",
                len(self._pending), len(self._in_flight),
            )
            self._notify(self.options.on_start, self._start_count, self, was_resumed)

            if not self.options.manual_consume:
                self.consume()
            self._on_task_terminal(StatusNotification())
        return self

    def stop(self) -> None:
        """Stop admitting new tasks. In-flight tasks keep running; start() resumes."""
        with self._lock:
            self._paused = True
        self._trace("stopped")

    def is_stopped(self) -> bool:
        return self._paused

    def cancel(
        self,
        identifier: Any,
        validate: Callable[[TaskDescriptor], bool] | None = None,
    ) -> bool | None:
        """
        Cancel an in-flight task: it moves to failed and on_error fires with
        Outcome.CANCELED. Admission is NOT resumed; call start() or consume().

        Returns None when `identifier` is not an in-flight task, False when
        `validate(descriptor)` refuses, True when canceled.
        """
        with self._lock:
            descriptor = self.get(identifier)
            if descriptor is None or descriptor.collection is not Collection.IN_FLIGHT:
                self._trace("cancel: %r is not in flight (%s)", identifier, descriptor)
                return None

            if validate is not None and not validate(descriptor):
                self._trace("cancel: refused by validate for #%s", descriptor.sequence_id)
                return False

            task = descriptor.task
            if task.dispatch is not None:
                task.dispatch.state = DispatchState.RESOLVED
            self._on_task_terminal(StatusNotification(Outcome.CANCELED), task, Collection.IN_FLIGHT)
            return True

    def restart(self, exclude_errors: bool = False) -> FuncStack:
        """
        Re-enqueue everything already processed (and anything still pending)
        in original insertion order, then start().

        With exclude_errors, failed tasks stay in the failed log and are not re-run.
        """
        with self._lock:
            self._restart_count += 1

            restored = list(self._pending) + self._in_flight + self._succeeded
            kept_failed: list[Task] = []
            if exclude_errors:
                kept_failed = list(self._failed)
            else:
                restored += self._failed
            restored.sort(key=lambda t: t.sequence_id)

            # Old resolvers must not settle the re-queued tasks.
            for task in restored:
                task.dispatch = None

            self._pending = deque(restored)
            self._in_flight = []
            self._succeeded = []
            self._failed = kept_failed
            self._start_count = None
            logger.info("Restart #%d: %d task(s) re-queued", self._restart_count, len(restored))

        return self.start()

    def clear(self) -> None:
        with self._lock:
            super().clear()
            self._paused = False
            self._completion_armed = True
            self._last_notification = StatusNotification()
            self._last_mode = None

    async def run(self) -> StatusSnapshot:
        """start() and wait for the run to complete; returns the final snapshot."""
        waiter: asyncio.Future[StatusSnapshot] = asyncio.get_running_loop().create_future()
        with self._lock:
            self._waiters.append(waiter)
        try:
            self.start()
        except Exception:
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
            waiter.cancel()
            raise
        return await waiter
