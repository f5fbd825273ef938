"""Shared interrupt handling helpers for stage execution.

This module provides consistent cancellation handling for everything that
waits on an external operation, so a cancelled run never blocks on a
stage or a retry backoff.

Key components:
- await_interruptible(): Interruptible sleep function
- GuardedOutcome: Result of a guarded await
- run_with_timeout_and_interrupt(): Timeout + cancellation handling
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine  # noqa: TC003 - runtime for TypeVar
from dataclasses import dataclass
from typing import Generic, TypeVar

__all__ = [
    "GuardedOutcome",
    "await_interruptible",
    "run_with_timeout_and_interrupt",
]


async def await_interruptible(
    delay: float, interrupt_event: asyncio.Event | None
) -> bool:
    """Wait for delay seconds, but return early if interrupted.

    Args:
        delay: Number of seconds to wait.
        interrupt_event: Event to monitor for interruption. If None,
                        waits the full duration.

    Returns:
        True if interrupted before delay elapsed, False if waited full duration.
    """
    if interrupt_event is None:
        await asyncio.sleep(delay)
        return False

    if interrupt_event.is_set():
        return True

    try:
        await asyncio.wait_for(interrupt_event.wait(), timeout=delay)
        return True
    except TimeoutError:
        return False


T = TypeVar("T")


@dataclass
class GuardedOutcome(Generic[T]):
    """Result of run_with_timeout_and_interrupt.

    At most one of timed_out and interrupted is True. When either is set,
    result is None and the wrapped coroutine has been cancelled.
    """

    result: T | None = None
    timed_out: bool = False
    interrupted: bool = False

    @property
    def completed(self) -> bool:
        return not (self.timed_out or self.interrupted)


async def _cancel_and_wait(task: asyncio.Task[object]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def run_with_timeout_and_interrupt(
    coro: Coroutine[object, object, T],
    timeout: float | None,
    interrupt_event: asyncio.Event | None,
) -> GuardedOutcome[T]:
    """Run a coroutine with timeout and cancellation monitoring.

    The coroutine is cancelled (and awaited, so its cleanup runs) if the
    timeout elapses or the event is set first. Exceptions raised by the
    coroutine itself propagate to the caller.

    Args:
        coro: The coroutine to run.
        timeout: Maximum seconds to wait for completion (None = no limit).
        interrupt_event: Event to monitor for cancellation. If None,
                        only the timeout is monitored.

    Returns:
        GuardedOutcome describing how the wait ended.
    """
    task = asyncio.ensure_future(coro)
    waiters: set[asyncio.Future[object]] = {task}
    interrupt_task: asyncio.Task[bool] | None = None
    if interrupt_event is not None:
        interrupt_task = asyncio.ensure_future(interrupt_event.wait())
        waiters.add(interrupt_task)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        # Outer cancellation: tear down both and propagate
        await _cancel_and_wait(task)
        if interrupt_task is not None:
            await _cancel_and_wait(interrupt_task)
        raise

    if interrupt_task is not None and interrupt_task not in done:
        await _cancel_and_wait(interrupt_task)

    if task in done:
        return GuardedOutcome(result=task.result())

    await _cancel_and_wait(task)
    if interrupt_task is not None and interrupt_task in done:
        return GuardedOutcome(interrupted=True)
    return GuardedOutcome(timed_out=True)
