"""
Backoff retries for calls that leave the process.

Only the remote payroll computation uses this: a transport error there is
usually a cold function or a dropped connection, and retrying a pure
calculation is harmless. Store writes are never retried; the saga undoes
them instead.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Tuple, Type

logger = logging.getLogger("payroll.utils.retry")


async def retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    *args,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    **kwargs
) -> Any:
    """
    Await ``func(*args, **kwargs)``, retrying on ``exceptions``.

    The n-th retry waits ``initial_delay * backoff_factor ** (n - 1)``
    seconds. Anything not listed in ``exceptions`` propagates at once, and
    the last listed error propagates once attempts run out.
    """
    name = getattr(func, "__qualname__", repr(func))
    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except exceptions as e:
            if attempt >= max_attempts:
                logger.error(f"{name} gave up after {attempt} attempts: {e}")
                raise
            delay = initial_delay * backoff_factor ** (attempt - 1)
            logger.warning(f"{name} attempt {attempt}/{max_attempts} failed ({e}); retrying in {delay:.1f}s")
            await asyncio.sleep(delay)
            attempt += 1
