# src/funcstack/errors.py

from __future__ import annotations


class FuncStackError(Exception):
    """Base class for errors raised by the scheduler itself (never by task bodies)."""


class InvalidArgumentError(FuncStackError, TypeError):
    """Malformed input to add()/push() or to the constructor. Fatal to the call only."""


class SchedulerConsistencyError(FuncStackError, RuntimeError):
    """
    The scheduler's own bookkeeping was violated (unknown outcome, mixed
    barrier in-flight). The run is aborted.
    """
