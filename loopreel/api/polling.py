"""
Bounded Polling
===============

Poll-until-done combinator independent of any backend's response shape.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..core.exceptions import TimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until(
    check: Callable[[], Awaitable[Optional[T]]],
    interval: float,
    timeout: float,
    operation: str = "poll",
) -> T:
    """
    Call ``check`` every ``interval`` seconds until it returns a value.

    ``check`` returns None for "not done yet" and raises to abort. The
    timeout is a hard ceiling on wall-clock time, including a check that is
    still in flight when it expires. Only one check runs at a time.

    Args:
        check: Coroutine factory performing one poll
        interval: Delay before each check
        timeout: Maximum total seconds
        operation: Label used in logs and the timeout error

    Returns:
        The first non-None value returned by ``check``

    Raises:
        TimeoutError: If no value arrived within ``timeout``
    """
    attempts = 0

    async def loop() -> T:
        nonlocal attempts
        while True:
            await asyncio.sleep(interval)
            attempts += 1
            outcome = await check()
            if outcome is not None:
                return outcome
            logger.debug(f"{operation}: not ready after {attempts} check(s)")

    try:
        return await asyncio.wait_for(loop(), timeout=timeout)
    except asyncio.TimeoutError:
        raise TimeoutError(
            f"{operation} timed out after {timeout} seconds ({attempts} checks)",
            operation=operation,
            timeout_seconds=timeout,
        )
