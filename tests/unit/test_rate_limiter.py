"""
Unit tests for the per-adapter token bucket.
"""

import threading

import pytest

from cloudsync.worker.utils.rate_limiter import RateLimiter


class TestRateLimiter:
    """Test RateLimiter."""

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RateLimiter(0)

    def test_burst_defaults_to_rate(self):
        """Test that the bucket holds at least one token."""
        assert RateLimiter(5).burst == 5
        assert RateLimiter(0.5).burst == 1

    def test_allow_drains_the_bucket(self):
        """Test that only ``burst`` calls pass without waiting."""
        limiter = RateLimiter(rate=1, burst=3)

        results = [limiter.allow() for _ in range(4)]

        assert results == [True, True, True, False]

    def test_tokens_refill_over_time(self):
        """Test that elapsed time adds tokens up to the burst."""
        limiter = RateLimiter(rate=1, burst=2)
        limiter.allow()
        limiter.allow()

        limiter._last_update -= 5.0

        assert limiter.available_tokens == pytest.approx(2.0)

    def test_wait_returns_immediately_with_tokens(self):
        limiter = RateLimiter(rate=1, burst=1)

        assert limiter.wait(timeout=0) is True

    def test_wait_times_out_on_empty_bucket(self):
        """Test that wait gives up once its timeout elapses."""
        limiter = RateLimiter(rate=0.1, burst=1)
        limiter.allow()

        assert limiter.wait(timeout=0.01) is False

    def test_concurrent_callers_share_the_bucket(self):
        """Test that concurrent threads cannot overdraw the bucket."""
        limiter = RateLimiter(rate=0.001, burst=5)
        results = []
        lock = threading.Lock()

        def take():
            allowed = limiter.allow()
            with lock:
                results.append(allowed)

        threads = [threading.Thread(target=take) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 5
