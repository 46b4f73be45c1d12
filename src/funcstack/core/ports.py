# src/funcstack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the scheduler.

The scheduler depends on Protocols instead of concrete implementations.
This keeps the event loop swappable and makes testing easier
(tests step a fake dispatcher by hand).
"""

from typing import TYPE_CHECKING, Any, Callable, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import StatusSnapshot, Task
    from ..tasks.task_store import TaskStore


class Dispatcher(Protocol):
    """
    "Run this callback later, don't block."

    asyncio.AbstractEventLoop satisfies this as-is.
    """

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> Any: ...


class CompletedHandler(Protocol):
    def __call__(self, snapshot: StatusSnapshot) -> Any: ...


class TaskEventHandler(Protocol):
    """on_progress / on_error."""

    def __call__(self, snapshot: StatusSnapshot, task: Task) -> Any: ...


class StartHandler(Protocol):
    def __call__(self, start_count: int, store: TaskStore, was_resumed: bool) -> Any: ...
