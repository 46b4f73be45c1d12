# src/funcstack/cli/main.py

"""
Demo entrypoint.

Initializes logging from settings, then runs a small mixed pipeline:
three concurrent tasks finishing in reverse order, a barrier that sees
all of them done, and a task that fails.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from ..config import StackOptions, get_settings
from ..logging_setup import setup_logging
from ..tasks.task_context import TaskContext
from ..tasks.task_models import AdmissionMode, Outcome, StatusSnapshot, Task
from ..tasks.task_scheduler import FuncStack

logger = logging.getLogger(__name__)


def _delayed(label: str, delay: float):
    def task(ctx: TaskContext) -> None:
        done = ctx.request_async_completion()
        ctx.payload["label"] = label
        asyncio.get_running_loop().call_later(delay, done, Outcome.SUCCESS, f"{label} after {delay:.1f}s")

    task.__name__ = label
    return task


def _barrier(ctx: TaskContext) -> str:
    finished = [t.name for t in ctx.stack.succeeded]
    return f"barrier saw {finished}"


def _broken(ctx: TaskContext) -> None:
    raise RuntimeError("this task always fails")


def _on_progress(snapshot: StatusSnapshot, task: Task) -> None:
    logger.info(
        "#%s %s -> %r (%d/%d finished)",
        task.sequence_id, task.name, snapshot.result, snapshot.counts.finished, snapshot.counts.total,
    )


def _on_error(snapshot: StatusSnapshot, task: Task) -> None:
    logger.warning("#%s %s -> %s: %r", task.sequence_id, task.name, snapshot.outcome, snapshot.result)


async def run_demo(options: StackOptions) -> StatusSnapshot:
    stack = FuncStack(options)
    stack.add([_delayed("slow", 0.3), _delayed("medium", 0.2), _delayed("fast", 0.1)], AdmissionMode.CONCURRENT)
    stack.add(_barrier, AdmissionMode.BARRIER)
    stack.add(_broken, AdmissionMode.CONCURRENT)
    return await stack.run()


def main() -> int:
    settings = get_settings()

    console_level = getattr(logging, settings.log_level, logging.INFO)
    setup_logging(log_dir=settings.log_dir, console_level=console_level)

    options = StackOptions.from_settings(settings, on_progress=_on_progress, on_error=_on_error)
    if options.manual_consume:
        logger.warning("Manual consume is set; the demo drives the stack itself, ignoring it.")
        options = replace(options, manual_consume=False)

    snapshot = asyncio.run(run_demo(options))

    counts = snapshot.counts
    logger.info("Done: %d finished of %d (start=%s)", counts.finished, counts.total, counts.start)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
