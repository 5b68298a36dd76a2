"""Fixed-interval polling with an explicit timeout outcome.

:func:`poll_until` repeatedly calls a fetch function until its result
satisfies a predicate, the attempt budget is spent, a wall-clock deadline
passes, or a cancellation event is set. The caller always gets back either
:class:`Found` or :class:`TimedOut`, never a sentinel value.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

logger = logging.getLogger("safe_quorum.polling")

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    """The predicate matched on attempt number ``attempts``."""

    value: T
    attempts: int


@dataclass(frozen=True)
class TimedOut:
    """The predicate never matched before the bound was reached."""

    attempts: int
    elapsed: float
    cancelled: bool = False


PollResult = Union[Found[T], TimedOut]


async def poll_until(
    fetch: Callable[[], T | Awaitable[T]],
    predicate: Callable[[T], bool] = bool,
    *,
    interval: float = 0.5,
    max_attempts: int = 120,
    deadline: float | None = None,
    cancel: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult[T]:
    """Call *fetch* until ``predicate(result)`` is true.

    Parameters
    ----------
    fetch:
        Zero-argument callable, sync or async. Exceptions it raises propagate.
    predicate:
        Decides whether a fetched value counts as found. Defaults to truthiness.
    interval:
        Seconds to sleep between consecutive fetches. No sleep follows the
        final attempt.
    max_attempts:
        Upper bound on the number of fetches.
    deadline:
        Optional wall-clock budget in seconds, measured with *clock*.
    cancel:
        Optional event; once set, polling stops before the next fetch.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    if interval < 0:
        raise ValueError("interval must not be negative")

    start = clock()
    attempts = 0
    while attempts < max_attempts:
        if cancel is not None and cancel.is_set():
            return TimedOut(attempts=attempts, elapsed=clock() - start, cancelled=True)

        result = fetch()
        if inspect.isawaitable(result):
            result = await result
        attempts += 1

        if predicate(result):
            return Found(value=result, attempts=attempts)

        if attempts >= max_attempts:
            break
        if deadline is not None and clock() - start >= deadline:
            logger.debug(f"Polling deadline of {deadline}s reached after {attempts} attempts")
            break
        await sleep(interval)

    return TimedOut(attempts=attempts, elapsed=clock() - start)
