"""Token bucket rate limiter owned by a single adapter instance."""

# flake8: noqa: E501


import threading
import time
from typing import Optional

from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Token bucket limiting outbound calls to one provider account.

    Tokens refill at ``rate`` per second up to ``burst``. ``wait`` blocks the
    calling thread until a token is available; ``allow`` never blocks.
    Thread-safe: adapter calls run on worker threads.
    """

    def __init__(self, rate: float, burst: Optional[int] = None):
        """Initialize the limiter.

        Args:
            rate: Sustained requests per second
            burst: Bucket capacity (defaults to the rate, at least 1)
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = float(rate)
        self.burst = max(1, int(burst if burst is not None else rate))
        self._tokens = float(self.burst)
        self._last_update = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        # Must be called with lock held
        now = time.monotonic()
        elapsed = now - self._last_update
        self._last_update = now
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)

    def allow(self) -> bool:
        """Take a token if one is available.

        Returns:
            True if the call may proceed now
        """
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a token is available.

        Args:
            timeout: Maximum seconds to wait, None waits forever

        Returns:
            True if a token was taken, False on timeout
        """
        start = time.monotonic()
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return True
                wait_time = (1.0 - self._tokens) / self.rate

            if timeout is not None:
                elapsed = time.monotonic() - start
                if elapsed >= timeout:
                    return False
                wait_time = min(wait_time, timeout - elapsed)

            if wait_time > 0.05:
                logger.debug("rate limit reached, waiting", wait_seconds=round(wait_time, 3))
            time.sleep(wait_time)

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens
