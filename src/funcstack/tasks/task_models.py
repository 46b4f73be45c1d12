# src/funcstack/tasks/task_models.py

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from ..errors import InvalidArgumentError

if TYPE_CHECKING:
    from .task_context import Dispatch


class AdmissionMode(StrEnum):
    """
    How a task is admitted into in-flight.

    - CONCURRENT ("async"): may overlap with other CONCURRENT tasks
    - BARRIER ("defer"): needs in-flight to itself; nothing before it may be
      outstanding when it starts, nothing after it starts until it finishes
    """

    CONCURRENT = "async"
    BARRIER = "defer"


class Placement(StrEnum):
    TAIL = "tail"  # queue-like
    HEAD = "head"  # stack-like


class Outcome(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    CANCELED = "canceled"


class Collection(StrEnum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def coerce_enum(enum_cls: type[StrEnum], value: Any, what: str) -> Any:
    """Accept an enum member or its string value."""
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidArgumentError(f"invalid {what}: {value!r}") from None


@dataclass(eq=False, slots=True)
class Task:
    """
    A registered unit of work.

    Identity matters (eq=False): the same callable may be added twice and
    becomes two distinct tasks with two sequence ids.
    """

    fn: Callable[..., Any]
    sequence_id: int
    mode: AdmissionMode
    name: str | None = None

    # Per-task state owned by the task body; observers may read it.
    payload: dict[str, Any] = field(default_factory=dict)

    # Current admission; replaced on every (re-)admission.
    dispatch: Dispatch | None = field(default=None, repr=False)


@dataclass(frozen=True, slots=True)
class TaskEntry:
    """Explicit placement for one task inside an add() list."""

    task: Callable[..., Any]
    placement: Placement | str | None = None  # None -> the stack's default placement

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TaskEntry:
        if "task" not in raw:
            raise InvalidArgumentError("task entry mapping needs a 'task' key")
        return cls(task=raw["task"], placement=raw.get("placement"))


@dataclass(frozen=True, slots=True)
class StatusNotification:
    outcome: Outcome | str | None = None
    result: Any = None


@dataclass(frozen=True, slots=True)
class RunCounts:
    start: int | None
    remaining: int
    finished: int
    pending: int
    in_flight: int
    total: int


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    """Read-only summary of run progress handed to observers."""

    outcome: Outcome | str | None
    result: Any
    admission_mode: AdmissionMode | None
    counts: RunCounts


@dataclass(frozen=True, slots=True)
class TaskDescriptor:
    task: Task
    collection: Collection
    position: int
    sequence_id: int
