"""Windowed-semaphore rate limiter shared by every call of one client.

Two bounds are enforced together:
- Concurrency: at most ``max(rate - 1, 1)`` permits held at once
- Rate: at most ``rate`` admissions per sliding window (default 1.1s,
  slightly over one second to absorb clock skew against the server quota)

Waiters are admitted FIFO. A permit is released when the ``acquire()``
context exits, whether the guarded call succeeded or raised.
"""

import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .config import DEFAULT_RATE_WINDOW
from .metrics import rate_limit_wait_seconds, requests_in_flight

logger = logging.getLogger("fortytwo.rate_limiter")

__all__ = ["RateLimiter"]


class RateLimiter:
    """Bounds outbound request rate and concurrency.

    Example:
        >>> limiter = RateLimiter(rate=2)
        >>> async with limiter.acquire():
        ...     response = await http.get(url)
    """

    def __init__(self, rate: int = 2, window: float = DEFAULT_RATE_WINDOW):
        """Initialize rate limiter.

        Args:
            rate: Requests admitted per window (values below 1 are treated as 1)
            window: Window length in seconds
        """
        if window <= 0:
            raise ValueError(f"window must be positive, got {window}")

        self.rate = max(rate, 1)
        self.window = window
        self.concurrency = max(self.rate - 1, 1)

        self._slots = asyncio.Semaphore(self.concurrency)
        self._window_lock = asyncio.Lock()
        self._admissions: deque[float] = deque()
        self._in_flight = 0
        self._waiting = 0

        logger.debug(
            "rate_limiter_initialized",
            extra={
                "rate": self.rate,
                "window": self.window,
                "concurrency": self.concurrency,
            },
        )

    @property
    def in_flight(self) -> int:
        """Number of permits currently held."""
        return self._in_flight

    @property
    def waiting(self) -> int:
        """Number of callers queued for a permit."""
        return self._waiting

    def _prune(self, now: float) -> None:
        while self._admissions and now - self._admissions[0] >= self.window:
            self._admissions.popleft()

    async def _admit(self) -> None:
        """Wait until the current (or next) window has room, then record it."""
        async with self._window_lock:
            while True:
                now = time.monotonic()
                self._prune(now)
                if len(self._admissions) < self.rate:
                    self._admissions.append(now)
                    return
                wait = self._admissions[0] + self.window - now
                logger.debug("rate_window_full", extra={"wait_seconds": round(wait, 3)})
                await asyncio.sleep(wait)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[None]:
        """Hold a permit for the duration of the ``async with`` block."""
        started = time.monotonic()
        self._waiting += 1
        try:
            await self._slots.acquire()
            try:
                await self._admit()
            except BaseException:
                self._slots.release()
                raise
        finally:
            self._waiting -= 1

        rate_limit_wait_seconds.observe(time.monotonic() - started)
        self._in_flight += 1
        requests_in_flight.inc()
        try:
            yield
        finally:
            self._in_flight -= 1
            requests_in_flight.dec()
            self._slots.release()
