"""Deadline racing for provider calls."""

import asyncio
import logging
from collections.abc import Awaitable
from enum import Enum
from typing import TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


class TimedOut(Enum):
    """Sentinel type returned when the deadline wins the race."""

    TIMED_OUT = "timed_out"


TIMED_OUT = TimedOut.TIMED_OUT


def _discard(task: asyncio.Future) -> None:
    # Retrieve the outcome of an abandoned call so it is never reported as
    # an unhandled task exception.
    if not task.cancelled():
        task.exception()


async def race(awaitable: Awaitable[T], deadline_seconds: float) -> T | TimedOut:
    """Await ``awaitable`` for at most ``deadline_seconds``.

    Returns the call's value, or :data:`TIMED_OUT` if the deadline expires
    first. The losing call is cancelled, which aborts the underlying request
    when the transport honours cancellation; otherwise its result is dropped.
    Exceptions raised by the call itself propagate unchanged.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=deadline_seconds)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    log.warning("Provider call exceeded %.1fs deadline, abandoning it", deadline_seconds)
    task.add_done_callback(_discard)
    task.cancel()
    return TIMED_OUT
