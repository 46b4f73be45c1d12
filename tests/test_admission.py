# tests/test_admission.py

from __future__ import annotations

import pytest

from funcstack.errors import SchedulerConsistencyError
from funcstack.tasks.task_models import AdmissionMode, Outcome

from .fakes import check_invariants, named


def waiting(name: str, resolvers: dict, started: list | None = None):
    """Task that parks itself until the test calls its resolver."""

    def task(ctx):
        if started is not None:
            started.append(name)
        resolvers[name] = ctx.request_async_completion()

    return named(name, task)


def test_empty_in_flight_always_admits(make_stack) -> None:
    stack = make_stack()
    assert stack.can_admit_next() is True


def test_concurrent_tasks_are_admitted_together_but_run_later(make_stack, dispatcher) -> None:
    ran: list[str] = []
    stack = make_stack([named(n, lambda ctx, n=n: ran.append(n)) for n in ("t1", "t2", "t3")])

    stack.start()

    assert [t.name for t in stack.in_flight] == ["t1", "t2", "t3"]
    assert stack.pending == ()
    assert len(dispatcher.scheduled) == 3
    assert ran == []  # nothing runs inside the admission loop

    dispatcher.run_all()
    assert ran == ["t1", "t2", "t3"]
    assert stack.in_flight == ()
    check_invariants(stack)


def test_barrier_is_a_full_synchronization_point(make_stack, dispatcher, recorder) -> None:
    resolvers: dict = {}
    started: list[str] = []
    stack = make_stack()
    stack.add(waiting("A", resolvers, started), AdmissionMode.CONCURRENT)
    stack.add(waiting("B", resolvers, started), AdmissionMode.BARRIER)
    stack.add(waiting("C", resolvers, started), AdmissionMode.CONCURRENT)

    stack.start()
    dispatcher.run_all()
    check_invariants(stack)
    assert started == ["A"]
    assert [t.name for t in stack.pending] == ["B", "C"]

    assert resolvers["A"](Outcome.SUCCESS) is True
    dispatcher.run_all()
    check_invariants(stack)
    assert started == ["A", "B"]
    assert [t.name for t in stack.in_flight] == ["B"]
    assert [t.name for t in stack.pending] == ["C"]

    assert resolvers["B"](Outcome.SUCCESS) is True
    dispatcher.run_all()
    check_invariants(stack)
    assert started == ["A", "B", "C"]

    resolvers["C"](Outcome.SUCCESS)
    assert recorder.progress_names() == ["A", "B", "C"]
    assert len(recorder.completed) == 1


def test_concurrent_after_barrier_waits_but_concurrent_before_overlap(make_stack, dispatcher) -> None:
    resolvers: dict = {}
    stack = make_stack()
    stack.add([waiting("c1", resolvers), waiting("c2", resolvers)])
    stack.add(waiting("b", resolvers), "defer")

    stack.start()
    assert [t.name for t in stack.in_flight] == ["c1", "c2"]
    assert stack.can_admit_next() is False

    dispatcher.run_all()
    resolvers["c2"](Outcome.SUCCESS)
    # c1 still in flight -> the barrier keeps waiting
    assert [t.name for t in stack.pending] == ["b"]

    resolvers["c1"](Outcome.SUCCESS)
    assert [t.name for t in stack.in_flight] == ["b"]


def test_consume_stops_at_first_refusal(make_stack, dispatcher) -> None:
    resolvers: dict = {}
    stack = make_stack(manual_consume=True)
    stack.add(waiting("a", resolvers))
    stack.add(waiting("b", resolvers), AdmissionMode.BARRIER)
    stack.add(waiting("c", resolvers))

    stack.start()
    assert stack.in_flight == ()

    assert stack.consume() == 1
    assert [t.name for t in stack.in_flight] == ["a"]
    assert [t.name for t in stack.pending] == ["b", "c"]
    assert stack.consume() == 0


def test_consume_is_a_no_op_while_stopped(make_stack, dispatcher) -> None:
    stack = make_stack([lambda ctx: None], manual_consume=True)
    stack.stop()

    assert stack.is_stopped() is True
    assert stack.consume() == 0
    assert stack.in_flight == ()
    assert dispatcher.scheduled == []


def test_stop_does_not_touch_in_flight_and_start_resumes(make_stack, dispatcher, recorder) -> None:
    resolvers: dict = {}
    stack = make_stack()
    stack.add(waiting("a", resolvers))
    stack.add(named("b", lambda ctx: "b"), AdmissionMode.BARRIER)

    stack.start()
    dispatcher.run_all()
    stack.stop()

    assert resolvers["a"](Outcome.SUCCESS) is True
    assert [t.name for t in stack.pending] == ["b"]
    assert recorder.completed == []

    stack.start()
    assert recorder.starts[-1][2] is True  # resumed
    dispatcher.run_all()
    assert recorder.progress_names() == ["a", "b"]
    assert len(recorder.completed) == 1


def test_mixed_barrier_in_flight_is_a_consistency_error(make_stack) -> None:
    stack = make_stack(manual_consume=True)
    stack.add(named("b", lambda ctx: None), AdmissionMode.BARRIER)
    stack.add(named("c", lambda ctx: None))
    stack.add(named("d", lambda ctx: None))

    # Force the forbidden state directly.
    stack._in_flight.extend([stack._pending.popleft(), stack._pending.popleft()])

    with pytest.raises(SchedulerConsistencyError):
        stack.can_admit_next()
