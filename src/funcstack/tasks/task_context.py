# src/funcstack/tasks/task_context.py

from __future__ import annotations

"""
Execution wrapper and resolution protocol.

Every admission creates one Dispatch. It runs the task body (from a
dispatcher callback, never inline in the admission loop), then settles
the task either right away or when the task calls its resolver:

    DISPATCHED -> RESOLVED                        (plain return / raise)
    DISPATCHED -> AWAITING_RESOLUTION -> RESOLVED (request_async_completion)

Awaitables returned by a task body (async def tasks) are driven on the
running loop and settle the task when they finish.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from .task_models import AdmissionMode, Outcome, StatusNotification, Task

if TYPE_CHECKING:
    from .task_scheduler import FuncStack

logger = logging.getLogger(__name__)

Resolver = Callable[..., bool]


class DispatchState(StrEnum):
    DISPATCHED = "dispatched"
    AWAITING_RESOLUTION = "awaiting_resolution"
    RESOLVED = "resolved"


class Dispatch:
    """One admission of one task."""

    __slots__ = ("task", "state", "future", "_stack", "_debug")

    def __init__(self, stack: FuncStack, task: Task) -> None:
        self.task = task
        self.state = DispatchState.DISPATCHED
        self.future: asyncio.Future[Any] | None = None
        self._stack = stack
        self._debug = stack.options.debug

    def __repr__(self) -> str:
        return f"Dispatch(#{self.task.sequence_id}, {self.state.value})"

    def request(self) -> Resolver:
        if self.state is DispatchState.DISPATCHED:
            self.state = DispatchState.AWAITING_RESOLUTION
            if self._debug:
                logger.debug("Task #%s awaits explicit resolution", self.task.sequence_id)
        return self.resolve

    def resolve(self, outcome: Outcome | str | StatusNotification, result: Any = None) -> bool:
        """
        Settle the task. Returns False when this dispatch can no longer
        settle it (already resolved, canceled, cleared or re-admitted).
        """
        if isinstance(outcome, StatusNotification):
            notification = outcome
        else:
            notification = StatusNotification(outcome=outcome, result=result)
        return self._stack.settle(self, notification)

    def run(self) -> None:
        task = self.task
        if self._debug:
            logger.debug("Running task #%s (%s)", task.sequence_id, task.name or task.fn)

        try:
            ret = task.fn(TaskContext(self))
        except asyncio.CancelledError as exc:
            # Same outcome as a cancelled awaitable.
            if self._debug:
                logger.debug("Task #%s was cancelled", task.sequence_id)
            self.resolve(Outcome.CANCELED, exc)
            return
        except Exception as exc:
            # A synchronous raise wins over a pending async-completion request.
            if self._debug:
                logger.debug("Task #%s raised %r", task.sequence_id, exc)
            self.resolve(Outcome.ERROR, exc)
            return

        if inspect.isawaitable(ret):
            self._drive(ret)
            return

        if self.state is DispatchState.DISPATCHED:
            self.resolve(Outcome.SUCCESS, ret)

    def _drive(self, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.resolve(Outcome.ERROR, exc)
            return

        self.future = asyncio.ensure_future(awaitable, loop=loop)
        self.future.add_done_callback(self._on_awaitable_done)

    def _on_awaitable_done(self, fut: asyncio.Future[Any]) -> None:
        if fut.cancelled():
            self.resolve(Outcome.CANCELED)
            return

        exc = fut.exception()
        if exc is not None:
            self.resolve(Outcome.ERROR, exc)
        elif self.state is DispatchState.DISPATCHED:
            self.resolve(Outcome.SUCCESS, fut.result())


class TaskContext:
    """The single argument a task body receives."""

    __slots__ = ("_dispatch",)

    def __init__(self, dispatch: Dispatch) -> None:
        self._dispatch = dispatch

    @property
    def sequence_id(self) -> int:
        return self._dispatch.task.sequence_id

    @property
    def admission_mode(self) -> AdmissionMode:
        return self._dispatch.task.mode

    @property
    def stack(self) -> FuncStack:
        return self._dispatch._stack

    @property
    def task(self) -> Task:
        return self._dispatch.task

    @property
    def payload(self) -> dict[str, Any]:
        return self._dispatch.task.payload

    def request_async_completion(self) -> Resolver:
        """
        Keep the task in flight after the body returns.

        The returned resolver is `resolver(outcome, result=None) -> bool`;
        call it (possibly much later, from any loop callback) with
        Outcome.SUCCESS or Outcome.ERROR.
        """
        return self._dispatch.request()
