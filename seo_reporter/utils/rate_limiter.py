"""Sliding-window throttle for outbound API calls (sync and async)."""

import asyncio
import logging
import time
from collections import deque
from typing import Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allow at most ``max_calls`` per ``period`` seconds, optionally with a
    second, longer cap (e.g. a daily quota expressed per hour).

    The Search Console client throttles synchronously from worker threads;
    the LLM client throttles from the event loop.

    Usage::

        limiter = RateLimiter(max_calls=20, period=60.0, name="gsc")

        with limiter:
            service.searchanalytics().query(...).execute()

        async with limiter:
            await client.chat.completions.create(...)
    """

    def __init__(
        self,
        max_calls: int = 60,
        period: float = 60.0,
        hourly_cap: Optional[int] = None,
        name: str = "default",
    ):
        if max_calls < 1:
            raise ValueError("max_calls must be >= 1")
        self.name = name
        self._max_calls = max_calls
        self._period = period
        self._hourly_cap = hourly_cap
        self._recent: deque[float] = deque()
        self._hourly: deque[float] = deque()
        self._lock: Optional[asyncio.Lock] = None

    @classmethod
    def per_minute(cls, requests_per_minute: int, name: str = "default") -> "RateLimiter":
        return cls(max_calls=requests_per_minute, period=60.0, name=name)

    def _prune(self, now: float) -> None:
        while self._recent and now - self._recent[0] >= self._period:
            self._recent.popleft()
        while self._hourly and now - self._hourly[0] >= 3600.0:
            self._hourly.popleft()

    def delay(self) -> float:
        """Seconds until the next call may proceed (0 when a slot is free)."""
        now = time.monotonic()
        self._prune(now)
        wait = 0.0
        if len(self._recent) >= self._max_calls:
            wait = self._period - (now - self._recent[0])
        if self._hourly_cap and len(self._hourly) >= self._hourly_cap:
            wait = max(wait, 3600.0 - (now - self._hourly[0]))
        return max(wait, 0.0)

    def _mark(self) -> None:
        now = time.monotonic()
        self._recent.append(now)
        if self._hourly_cap:
            self._hourly.append(now)

    def wait_sync(self) -> None:
        while (wait := self.delay()) > 0:
            logger.debug("RateLimiter(%s) throttling for %.2fs", self.name, wait)
            time.sleep(wait)
        self._mark()

    async def wait(self) -> None:
        # Created lazily so the limiter can be built outside a running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            while (wait := self.delay()) > 0:
                logger.debug("RateLimiter(%s) throttling for %.2fs", self.name, wait)
                await asyncio.sleep(wait)
            self._mark()

    def __enter__(self):
        self.wait_sync()
        return self

    def __exit__(self, *exc):
        return False

    async def __aenter__(self):
        await self.wait()
        return self

    async def __aexit__(self, *exc):
        return False

    @property
    def calls_in_window(self) -> int:
        self._prune(time.monotonic())
        return len(self._recent)
