"""
Bounded polling.

All waiting in the pipeline goes through wait_until: a cooperative
sleep-and-recheck loop whose deadline is fixed when the loop starts.
Cancellation is observed at every sleep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from snapverify.errors import WaitTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Type aliases for injectable time sources
SleepFunc = Callable[[float], Awaitable[None]]
ClockFunc = Callable[[], float]


async def wait_until(
    check: Callable[[], Awaitable[T | None]],
    *,
    description: str,
    timeout: float,
    interval: float,
    sleep: SleepFunc = asyncio.sleep,
    clock: ClockFunc = time.monotonic,
) -> T:
    """Poll ``check`` until it returns a truthy value.

    The check always runs at least once. Between unsuccessful checks the
    loop sleeps ``interval`` seconds (never past the deadline).

    Args:
        check: Coroutine function returning a truthy result when done
        description: What is being waited for (used in logs and errors)
        timeout: Seconds from loop entry before giving up
        interval: Seconds between checks
        sleep: Async sleep function
        clock: Monotonic clock

    Returns:
        The first truthy value returned by ``check``

    Raises:
        WaitTimeoutError: If the deadline passes first
    """
    deadline = clock() + timeout
    attempts = 0

    while True:
        attempts += 1
        result = await check()
        if result:
            if attempts > 1:
                logger.debug("%s after %d checks", description, attempts)
            return result

        remaining = deadline - clock()
        if remaining <= 0:
            raise WaitTimeoutError(description, timeout)

        level = logging.INFO if attempts == 1 else logging.DEBUG
        logger.log(level, "Waiting for %s…", description)
        await sleep(min(interval, remaining))
