# link_scout/crawler/rate_limiter.py
"""
Per-host pacing shared by every scan of the process.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict

from link_scout.logger import logger
from link_scout.utils import hostname_of


class HostRateLimiter:
    """Enforces a minimum interval between request starts to one hostname.

    The per-host lock is held across the wait and the timestamp update, so
    concurrent scans of the same host queue up instead of overwriting each
    other's timestamps.
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._last_hit: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def await_turn(self, url: str) -> None:
        host = hostname_of(url)
        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            last = self._last_hit.get(host)
            if last is not None:
                wait = self.min_interval - (self._clock() - last)
                if wait > 0:
                    logger.debug("Rate limit: waiting %.3f s for %s", wait, host)
                    await asyncio.sleep(wait)
            self._last_hit[host] = self._clock()

    def last_request(self, url: str) -> float | None:
        return self._last_hit.get(hostname_of(url))


__all__ = ["HostRateLimiter"]
