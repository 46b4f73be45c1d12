# src/funcstack/tasks/task_store.py

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from ..config import StackOptions
from ..errors import InvalidArgumentError
from .task_models import (
    AdmissionMode,
    Collection,
    Placement,
    RunCounts,
    Task,
    TaskDescriptor,
    TaskEntry,
    coerce_enum,
)

logger = logging.getLogger(__name__)

_SCAN_ORDER = (Collection.PENDING, Collection.IN_FLIGHT, Collection.SUCCEEDED, Collection.FAILED)


class TaskStore:
    """
    In-memory task store: four ordered collections plus counters.

    - pending:   admission order; tasks enter at the tail or the head
    - in_flight: admitted, not yet settled; removed by identity
    - succeeded / failed: append-only logs

    A task lives in exactly one collection. Sequence ids come from a
    monotonic counter and are never reused (until clear()).

    Thread-safety:
    - all access goes through one re-entrant lock
    """

    def __init__(self, options: StackOptions | None = None) -> None:
        self.options = options if options is not None else StackOptions()
        self._lock = threading.RLock()

        self._pending: deque[Task] = deque()
        self._in_flight: list[Task] = []
        self._succeeded: list[Task] = []
        self._failed: list[Task] = []

        self._total = 0
        self._start_count: int | None = None
        self._restart_count = 0

    def __repr__(self) -> str:
        c = self.counts()
        return (
            f"{type(self).__name__}(pending={c.pending}, in_flight={c.in_flight}, "
            f"succeeded={len(self._succeeded)}, failed={len(self._failed)}, total={c.total})"
        )

    # ---- registration ----

    def add(self, tasks: Any, mode: AdmissionMode | str | None = None) -> TaskStore:
        """
        Register one callable, a list of callables, or a list of
        TaskEntry / {"task": fn, "placement": ...} items.

        Raises InvalidArgumentError on anything else; nothing is added then.
        Returns self for chaining.
        """
        self._register(self._normalize(tasks), mode)
        return self

    def push(
        self,
        task: Callable[..., Any],
        mode: AdmissionMode | str | None = None,
        *,
        name: str | None = None,
    ) -> int:
        """Register exactly one callable and return its sequence id."""
        if not callable(task):
            raise InvalidArgumentError(f"push() needs a callable, not {type(task).__name__}")
        (created,) = self._register([(task, self.options.default_placement)], mode)
        if name is not None:
            created.name = name
        return created.sequence_id

    def length(self) -> int:
        """Number of tasks ever registered (not the number remaining)."""
        return self._total

    def _normalize(self, tasks: Any) -> list[tuple[Callable[..., Any], Placement]]:
        default = self.options.default_placement

        if isinstance(tasks, (list, tuple)):
            out: list[tuple[Callable[..., Any], Placement]] = []
            for item in tasks:
                if isinstance(item, TaskEntry):
                    entry = item
                elif isinstance(item, Mapping):
                    entry = TaskEntry.from_mapping(item)
                elif callable(item):
                    out.append((item, default))
                    continue
                else:
                    raise InvalidArgumentError(f"cannot add {type(item).__name__} as a task")

                if not callable(entry.task):
                    raise InvalidArgumentError(f"task entry holds a non-callable {type(entry.task).__name__}")
                placement = default if entry.placement is None else coerce_enum(Placement, entry.placement, "placement")
                out.append((entry.task, placement))
            return out

        if callable(tasks):
            return [(tasks, default)]

        raise InvalidArgumentError(
            "add() takes a callable, a list of callables, or a list of TaskEntry/{'task', 'placement'} items"
        )

    def _resolve_mode(self, mode: AdmissionMode | str | None) -> AdmissionMode:
        if self.options.enforce_default_mode or mode is None:
            return self.options.default_mode
        return coerce_enum(AdmissionMode, mode, "admission mode")

    def _register(
        self,
        entries: list[tuple[Callable[..., Any], Placement]],
        mode: AdmissionMode | str | None,
    ) -> list[Task]:
        resolved = self._resolve_mode(mode)
        created: list[Task] = []
        with self._lock:
            for fn, placement in entries:
                task = Task(
                    fn=fn,
                    sequence_id=self._total,
                    mode=resolved,
                    name=getattr(fn, "__name__", None),
                )
                self._total += 1
                if placement is Placement.HEAD:
                    self._pending.appendleft(task)
                else:
                    self._pending.append(task)
                created.append(task)
        return created

    # ---- lookup ----

    def _collection(self, which: Collection) -> deque[Task] | list[Task]:
        if which is Collection.PENDING:
            return self._pending
        if which is Collection.IN_FLIGHT:
            return self._in_flight
        if which is Collection.SUCCEEDED:
            return self._succeeded
        return self._failed

    @staticmethod
    def _matches(task: Task, identifier: Any) -> bool:
        if isinstance(identifier, Task):
            return task is identifier
        if isinstance(identifier, int) and not isinstance(identifier, bool):
            return task.sequence_id == identifier
        if isinstance(identifier, str):
            return task.name == identifier
        return task.fn is identifier

    def get(self, identifier: Any) -> TaskDescriptor | None:
        """
        Find a task by sequence id (int), name (str), Task record or the
        original callable. First match wins, scanning pending, in_flight,
        succeeded, failed. None when not found.
        """
        with self._lock:
            for which in _SCAN_ORDER:
                for pos, task in enumerate(self._collection(which)):
                    if self._matches(task, identifier):
                        return TaskDescriptor(task=task, collection=which, position=pos, sequence_id=task.sequence_id)
        return None

    # ---- views / counters ----

    @property
    def pending(self) -> tuple[Task, ...]:
        return tuple(self._pending)

    @property
    def in_flight(self) -> tuple[Task, ...]:
        return tuple(self._in_flight)

    @property
    def succeeded(self) -> tuple[Task, ...]:
        return tuple(self._succeeded)

    @property
    def failed(self) -> tuple[Task, ...]:
        return tuple(self._failed)

    @property
    def start_count(self) -> int | None:
        return self._start_count

    @property
    def restart_count(self) -> int:
        return self._restart_count

    def counts(self) -> RunCounts:
        with self._lock:
            pending = len(self._pending)
            in_flight = len(self._in_flight)
            return RunCounts(
                start=self._start_count,
                remaining=pending + in_flight,
                finished=len(self._succeeded) + len(self._failed),
                pending=pending,
                in_flight=in_flight,
                total=self._total,
            )

    # ---- reset ----

    def clear(self) -> None:
        """Drop every task and reset the counters. Handlers/options are kept."""
        with self._lock:
            self._pending = deque()
            self._in_flight = []
            self._succeeded = []
            self._failed = []
            self._total = 0
            self._start_count = None
            self._restart_count = 0
        logger.debug("%s cleared", type(self).__name__)
