import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from functools import wraps
from typing import TypeVar

from aiojobs import Scheduler

T = TypeVar("T")


@asynccontextmanager
async def get_scheduler(
    limit: int | None = 100,
    close_timeout: float = 45,
) -> AsyncGenerator[Scheduler]:
    """
    Get a scheduler for a batch of async jobs.

    One scheduler per unit of work, like a scan. At most `limit` jobs run concurrently, the others wait in the pending queue. On exit, running jobs get `close_timeout` secs to finish before being cancelled.
    """
    async with Scheduler(
        close_timeout=close_timeout,
        limit=limit,
    ) as scheduler:
        yield scheduler


def loop_cache(maxsize: int = 8):
    """
    Cache the result of an async factory, once per event loop.

    Meant for clients bound to the loop which created them, like an aiohttp session. Factory must take no arguments. If `maxsize` loops are cached, the oldest entry is dropped.
    """

    def decorator(func: Callable[[], Awaitable[T]]) -> Callable[[], Awaitable[T]]:
        cache: dict[int, T] = {}

        @wraps(func)
        async def wrapper() -> T:
            key = id(asyncio.get_running_loop())
            if key in cache:
                return cache[key]

            value = await func()
            cache[key] = value
            # Dicts keep the insertion order, first key is the oldest
            if len(cache) > maxsize:
                del cache[next(iter(cache))]
            return value

        return wrapper

    return decorator
