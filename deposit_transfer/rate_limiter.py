"""
Rate Limiter

Spaces out balance queries so a burst of released deposits does not hammer
the exchange account endpoint.
"""

import asyncio
from typing import Optional

from loguru import logger


class AsyncRateLimiter:
    """
    One token per interval, burst of one

    The first acquire() returns immediately; each following acquire() waits
    until at least `interval` seconds have passed since the previous slot.
    Waiting is a plain asyncio.sleep, so cancelling the task aborts it.
    """

    def __init__(self, interval: float):
        """
        Initialize rate limiter

        Args:
            interval: Minimum seconds between two acquisitions
        """
        self.interval = interval
        self._next_slot: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()

            if self._next_slot is not None and self._next_slot > now:
                wait_time = self._next_slot - now
                logger.debug(f"Rate limiting: waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)
                now = loop.time()

            self._next_slot = now + self.interval
