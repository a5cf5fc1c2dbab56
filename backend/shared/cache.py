"""Per-process read cache for rarely changing rows.

Two layers, both from cachetools:
  - ``fresh``: TTLCache answering reads inside the TTL
  - ``last_good``: LRUCache that outlives the TTL and only answers when the
    underlying read fails

Nothing is shared across workers.
"""

import functools
import logging
import time
from collections.abc import Callable
from typing import Any

from cachetools import LRUCache, TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Distinguishes "not cached" from a cached None
_MISSING = object()


class AsyncTTLCache:
    def __init__(
        self,
        maxsize: int = 128,
        ttl: float = 60.0,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self.last_good: LRUCache = LRUCache(maxsize=maxsize)

    def remember(self, key: str, value: Any) -> None:
        self.fresh[key] = value
        self.last_good[key] = value


def cached(cache: AsyncTTLCache, key_func: Callable[..., str]):
    """Cache an async read under ``key_func(*args, **kwargs)``.

    A failed read falls back to the last value seen for the key, expired or
    not; without one the error propagates.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            key = key_func(*args, **kwargs)

            value = cache.fresh.get(key, _MISSING)
            if value is not _MISSING:
                return value

            try:
                value = await func(*args, **kwargs)
            except Exception as e:
                stale = cache.last_good.get(key, _MISSING)
                if stale is _MISSING:
                    raise
                logger.warning(f"Read of {key} failed ({type(e).__name__}), serving last known value")
                return stale

            cache.remember(key, value)
            return value

        return wrapper

    return decorator
