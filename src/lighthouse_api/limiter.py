import asyncio
import logging
import threading
import time

from .errors import RequestCancelledError
from .types import RateLimitConfig

logger = logging.getLogger("lighthouse_api")


# ---------- Base bucket (shared logic; synchronization handled by subclasses) ----------


class _Bucket:
    def __init__(self, interval: float, burst: int):
        """Initialize a token bucket.

        Args:
            interval (float): seconds needed to refill one token
            burst (int): bucket capacity; the bucket starts full

        Raises:
            ValueError: if interval is not positive or burst is below 1
        """
        if interval <= 0:
            raise ValueError("interval must be greater than 0")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.interval = float(interval)
        self.burst = int(burst)
        self._tokens = float(burst)
        self._last = self._now()

    @classmethod
    def from_config(cls, config: RateLimitConfig | None):
        if config is None or not config.enabled:
            return None
        return cls(config.interval, config.burst)

    def _now(self) -> float:
        return time.monotonic()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed / self.interval)
        self._last = now

    def _reserve(self) -> float:
        # Take a token now, possibly going into debt, and return how long the
        # caller must wait before using it. Callers queue up in reservation order.
        self._refill(self._now())
        self._tokens -= 1.0
        if self._tokens >= 0:
            return 0.0
        return -self._tokens * self.interval

    def _release(self) -> None:
        # Give back a reservation that was never used.
        self._refill(self._now())
        self._tokens = min(float(self.burst), self._tokens + 1.0)

    @property
    def tokens(self) -> float:
        return self._tokens


# ---------- Thread-safe bucket (requests) ----------


class TokenBucket(_Bucket):
    def __init__(self, interval: float, burst: int = 1):
        super().__init__(interval, burst)
        self._lock = threading.Lock()

    def acquire(self, cancel: threading.Event | None = None) -> None:
        """Block until a token is available.

        Raises RequestCancelledError if ``cancel`` is set before the token is due;
        the reserved token is returned to the bucket in that case.
        """
        if cancel is not None and cancel.is_set():
            raise RequestCancelledError("cancelled before acquiring a rate limit token")
        with self._lock:
            delay = self._reserve()
        if delay <= 0:
            return
        logger.debug(f"rate limited; waiting {delay:.2f}s for a token")
        if cancel is None:
            time.sleep(delay)
            return
        if cancel.wait(delay):
            with self._lock:
                self._release()
            raise RequestCancelledError("cancelled while waiting for a rate limit token")


# ---------- Async bucket (httpx) ----------


class AsyncTokenBucket(_Bucket):
    def __init__(self, interval: float, burst: int = 1):
        super().__init__(interval, burst)
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a token is available; task cancellation returns the token."""
        async with self._lock:
            delay = self._reserve()
        if delay <= 0:
            return
        logger.debug(f"rate limited; waiting {delay:.2f}s for a token")
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            async with self._lock:
                self._release()
            raise
