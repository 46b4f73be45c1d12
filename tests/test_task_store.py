# tests/test_task_store.py

from __future__ import annotations

import functools

import pytest

from funcstack.config import StackOptions
from funcstack.errors import InvalidArgumentError
from funcstack.tasks.task_models import AdmissionMode, Collection, Placement, TaskEntry
from funcstack.tasks.task_store import TaskStore

from .fakes import check_invariants


def a(ctx):
    return "a"


def b(ctx):
    return "b"


def c(ctx):
    return "c"


def x(ctx):
    return "x"


def names(tasks) -> list[str | None]:
    return [t.name for t in tasks]


def test_sequence_ids_are_increasing_and_unique() -> None:
    store = TaskStore()
    assert store.add(a).add([b, c]) is store
    assert store.push(x) == 3

    assert [t.sequence_id for t in store.pending] == [0, 1, 2, 3]
    assert store.length() == 4
    check_invariants(store)


def test_length_counts_everything_ever_added() -> None:
    store = TaskStore()
    store.add([a, b])
    store._pending.popleft()  # simulate the engine taking one
    assert store.length() == 2


@pytest.mark.parametrize("bad", [42, "a", None, {"task": a}, [a, 42], [TaskEntry(task=42)]])
def test_add_rejects_malformed_input_without_side_effects(bad) -> None:
    store = TaskStore()
    with pytest.raises(InvalidArgumentError):
        store.add(bad)
    assert store.length() == 0
    assert store.pending == ()


def test_invalid_argument_is_a_type_error() -> None:
    with pytest.raises(TypeError):
        TaskStore().add(object())


def test_push_requires_a_single_callable() -> None:
    store = TaskStore()
    with pytest.raises(InvalidArgumentError):
        store.push([a, b])


def test_default_placement_tail_and_head() -> None:
    tail = TaskStore()
    tail.add(a).add(b)
    assert names(tail.pending) == ["a", "b"]

    head = TaskStore(StackOptions(default_placement=Placement.HEAD))
    head.add(a).add(b)
    assert names(head.pending) == ["b", "a"]


def test_list_added_at_head_ends_up_reversed() -> None:
    store = TaskStore(StackOptions(default_placement="head"))
    store.add([a, b, c])
    assert names(store.pending) == ["c", "b", "a"]


def test_per_entry_placement_mixes_with_plain_callables() -> None:
    store = TaskStore()
    store.add(x)
    store.add([TaskEntry(a, Placement.HEAD), {"task": b, "placement": "tail"}, c])
    assert names(store.pending) == ["a", "x", "b", "c"]


def test_mode_defaults_and_per_call_override() -> None:
    store = TaskStore()
    store.add(a)
    store.add(b, AdmissionMode.BARRIER)
    store.add(c, "defer")
    assert [t.mode for t in store.pending] == [
        AdmissionMode.CONCURRENT,
        AdmissionMode.BARRIER,
        AdmissionMode.BARRIER,
    ]


def test_enforced_default_mode_ignores_per_call_mode() -> None:
    store = TaskStore(StackOptions(default_mode=AdmissionMode.BARRIER, enforce_default_mode=True))
    store.add(a, AdmissionMode.CONCURRENT)
    store.push(b, "async")
    assert {t.mode for t in store.pending} == {AdmissionMode.BARRIER}


def test_unknown_mode_is_rejected() -> None:
    store = TaskStore()
    with pytest.raises(InvalidArgumentError):
        store.add(a, "sometimes")
    assert store.length() == 0


def test_get_by_id_name_callable_and_record() -> None:
    store = TaskStore()
    store.add([a, b, c])
    task_b = store.pending[1]

    by_id = store.get(1)
    assert by_id is not None
    assert by_id.task is task_b
    assert by_id.collection is Collection.PENDING
    assert by_id.position == 1
    assert by_id.sequence_id == 1

    assert store.get("b").task is task_b
    assert store.get(b).task is task_b
    assert store.get(task_b).task is task_b


def test_get_not_found_returns_none() -> None:
    store = TaskStore()
    store.add(a)
    assert store.get(99) is None
    assert store.get("nope") is None
    assert store.get(b) is None
    assert store.get(True) is None


def test_get_scans_pending_before_finished_collections() -> None:
    store = TaskStore()
    store.add(a)
    done = store._pending.popleft()
    store._succeeded.append(done)
    store.add(a)

    found = store.get(a)
    assert found.collection is Collection.PENDING
    assert found.sequence_id == 1

    assert store.get(0).collection is Collection.SUCCEEDED


def test_push_name_override_and_nameless_callables() -> None:
    store = TaskStore()
    sid = store.push(lambda ctx: 1, name="answer")
    partial_id = store.push(functools.partial(a))

    assert store.get("answer").sequence_id == sid
    assert store.get(partial_id).task.name is None


def test_clear_is_a_fresh_store() -> None:
    store = TaskStore()
    store.add([a, b])
    store._start_count = 2

    store.clear()

    assert store.length() == 0
    assert store.pending == ()
    assert store.start_count is None
    assert store.push(c) == 0
    check_invariants(store)


def test_counts() -> None:
    store = TaskStore()
    store.add([a, b, c])
    store._in_flight.append(store._pending.popleft())

    counts = store.counts()
    assert counts.pending == 2
    assert counts.in_flight == 1
    assert counts.remaining == 3
    assert counts.finished == 0
    assert counts.total == 3
    assert counts.start is None
