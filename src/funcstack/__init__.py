"""
funcstack - run callables with async/defer admission and track their progress.

    stack = FuncStack(on_done).add([fetch_a, fetch_b]).add(merge, "defer")
    stack.start()            # from inside a running asyncio loop
    snapshot = await FuncStack(tasks=[...]).run()
"""

from .config import Settings, StackOptions, get_settings
from .errors import FuncStackError, InvalidArgumentError, SchedulerConsistencyError
from .tasks.task_context import Dispatch, DispatchState, Resolver, TaskContext
from .tasks.task_models import (
    AdmissionMode,
    Collection,
    Outcome,
    Placement,
    RunCounts,
    StatusNotification,
    StatusSnapshot,
    Task,
    TaskDescriptor,
    TaskEntry,
)
from .tasks.task_scheduler import FuncStack
from .tasks.task_store import TaskStore

__all__ = [
    "AdmissionMode",
    "Collection",
    "Dispatch",
    "DispatchState",
    "FuncStack",
    "FuncStackError",
    "InvalidArgumentError",
    "Outcome",
    "Placement",
    "Resolver",
    "RunCounts",
    "SchedulerConsistencyError",
    "Settings",
    "StackOptions",
    "StatusNotification",
    "StatusSnapshot",
    "Task",
    "TaskContext",
    "TaskDescriptor",
    "TaskEntry",
    "TaskStore",
    "get_settings",
]
