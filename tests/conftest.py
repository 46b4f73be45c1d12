# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from funcstack.tasks.task_scheduler import FuncStack

from .fakes import EventRecorder, FakeDispatcher


@pytest.fixture()
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture()
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture()
def make_stack(dispatcher: FakeDispatcher, recorder: EventRecorder) -> Callable[..., FuncStack]:
    """
    FuncStack wired to the fake dispatcher and the recorder's handlers.

    Keyword arguments are StackOptions overrides (manual_consume=True, ...).
    """

    def _make(tasks: Any = None, **overrides: Any) -> FuncStack:
        return FuncStack(recorder.options(**overrides), tasks, dispatcher=dispatcher)

    return _make
