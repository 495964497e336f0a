"""Request pacing for the Liqui transport.

Liqui asks clients to stay around one request every few seconds. The bucket
allows a small burst (`capacity`) and then paces to `rate` requests/second.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable


class TokenBucketRateLimiter:
    """A token-bucket rate limiter.

    - capacity defaults to max(1, rate)
    - acquire():
        - refill by (now - last_checked_time) * rate, clamped to capacity
        - if tokens >= 1: consume one and return
        - else: sleep until one token would exist
    """

    def __init__(
        self,
        rate: float,
        *,
        capacity: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be > 0. Got: {rate}")

        self.rate: float = float(rate)
        self.capacity: float = float(capacity) if capacity is not None else max(1.0, self.rate)
        if self.capacity < 1.0:
            raise ValueError(f"capacity must be >= 1. Got: {self.capacity}")
        self._clock = clock
        self.token_count: float = self.capacity
        self.last_checked_time: float = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self.last_checked_time)
        self.last_checked_time = now
        self.token_count = min(self.capacity, self.token_count + elapsed * self.rate)

    def delay_until_token(self) -> float:
        """Seconds until one token is available (0 if one is available now)."""
        self._refill()
        if self.token_count >= 1.0:
            return 0.0
        return (1.0 - self.token_count) / self.rate

    async def acquire(self) -> None:
        """Wait until at least one token is available, then consume it."""
        while True:
            delay = self.delay_until_token()
            if delay <= 0.0:
                self.token_count -= 1.0
                return
            await asyncio.sleep(delay)
