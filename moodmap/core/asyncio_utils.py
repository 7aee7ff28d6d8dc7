"""Asyncio helpers for fire-and-forget work that must never lose exceptions."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Iterable, Optional

from .logging_utils import LoggerLike, ensure_structured_logger


def _task_label(task: asyncio.Task[Any], context: Optional[str]) -> str:
    if context:
        return context
    return task.get_name() or "background task"


def add_task_exception_logger(
    task: asyncio.Task[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
) -> asyncio.Task[Any]:
    """Retrieve and log task exceptions as soon as the task finishes.

    Without this, a failing fire-and-forget task only surfaces as
    "Task exception was never retrieved" when it is garbage collected.
    """
    task_logger = ensure_structured_logger(logger, fallback_name="asyncio")

    def _done(done_task: asyncio.Task[Any]) -> None:
        try:
            done_task.result()
        except asyncio.CancelledError:
            return
        except Exception:
            task_logger.exception("Unhandled exception in %s", _task_label(done_task, context))

    task.add_done_callback(_done)
    return task


def create_logged_task(
    coro: Awaitable[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
    pending: Optional[set[asyncio.Task[Any]]] = None,
) -> asyncio.Task[Any]:
    """Create a task that won't lose exceptions, optionally tracking it in ``pending``."""
    task = asyncio.get_running_loop().create_task(coro)
    if context:
        task.set_name(context)

    add_task_exception_logger(task, logger=logger, context=context)

    if pending is not None:
        pending.add(task)
        task.add_done_callback(pending.discard)

    return task


async def cancel_tasks(tasks: Iterable[asyncio.Task[Any]], timeout: float = 2.0) -> None:
    """Cancel ``tasks`` and wait (bounded) for them to unwind."""
    pending = [task for task in list(tasks) if not task.done()]
    for task in pending:
        task.cancel()
    if not pending:
        return
    await asyncio.wait(pending, timeout=timeout)


__all__ = ["add_task_exception_logger", "cancel_tasks", "create_logged_task"]
