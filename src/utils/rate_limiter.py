"""Rate limiting utilities."""

import asyncio
import threading
import time
from typing import Callable, TypeVar

T = TypeVar("T")


class RateLimiter:
    """Enforces a minimum interval between granted upstream requests.

    One instance is shared by every caller of a given upstream client. The
    grant time is stamped when permission is given, not when the request
    finishes, so a slow upstream call does not widen the spacing for the
    next caller.
    """

    def __init__(self, min_interval: float, clock: Callable[[], float] = time.monotonic):
        """
        Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between two granted requests
            clock: Monotonic time source
        """
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self.last_request_time = float("-inf")
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def per_second(cls, requests_per_second: float) -> "RateLimiter":
        return cls(1.0 / requests_per_second)

    def _reserve(self) -> float:
        """Atomically claim the next grant slot and return its time."""
        with self._lock:
            now = self._clock()
            grant_time = max(now, self.last_request_time + self.min_interval)
            self.last_request_time = grant_time
            return grant_time

    async def wait_for_next_request(self) -> float:
        """Suspend until this caller may issue a request.

        Returns:
            The granted timestamp (in clock units)
        """
        grant_time = self._reserve()
        delay = grant_time - self._clock()
        if delay > 0:
            await asyncio.sleep(delay)
        return grant_time

    def wait_if_needed(self) -> float:
        """Blocking version of wait_for_next_request for threaded callers."""
        grant_time = self._reserve()
        delay = grant_time - self._clock()
        if delay > 0:
            time.sleep(delay)
        return grant_time

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorator to rate limit a blocking function."""

        def wrapper(*args, **kwargs) -> T:
            self.wait_if_needed()
            return func(*args, **kwargs)

        return wrapper
