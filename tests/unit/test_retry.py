"""
Unit tests for the backoff helpers.
"""

from unittest.mock import MagicMock

import pytest

from cloudsync.shared.errors import ThrottlingError
from cloudsync.worker.utils.retry import compute_backoff_delay, with_backoff


def throttled(error):
    return isinstance(error, ThrottlingError)


class TestComputeBackoffDelay:
    """Test the failed task retry delay."""

    def test_doubles_from_base(self):
        """Test the 10, 20, 40... progression."""
        assert [compute_backoff_delay(n, 10, 300) for n in range(5)] == [10, 20, 40, 80, 160]

    def test_capped_at_ceiling(self):
        """Test that large attempts return the ceiling."""
        assert compute_backoff_delay(5, 10, 300) == 300
        assert compute_backoff_delay(200, 10, 300) == 300

    def test_monotonic_with_defaults(self):
        """Test that delays never shrink and top out at the configured maximum."""
        delays = [compute_backoff_delay(n) for n in range(12)]

        assert delays == sorted(delays)
        assert delays[0] == 10
        assert max(delays) == 300

    def test_negative_attempt_uses_base(self):
        assert compute_backoff_delay(-2, 10, 300) == 10


class TestWithBackoff:
    """Test retrying of throttled provider calls."""

    def test_retries_throttling_then_succeeds(self):
        """Test that throttled attempts are retried until one succeeds."""
        operation = MagicMock(side_effect=[ThrottlingError("slow down"), ThrottlingError("slow down"), "ok"])

        result = with_backoff(3, operation, throttled, base_delay=0, max_delay=0)

        assert result == "ok"
        assert operation.call_count == 3

    def test_non_retryable_error_raised_immediately(self):
        """Test that other errors are not retried."""
        operation = MagicMock(side_effect=ValueError("bad request"))

        with pytest.raises(ValueError):
            with_backoff(5, operation, throttled, base_delay=0, max_delay=0)

        assert operation.call_count == 1

    def test_gives_up_after_max_attempts(self):
        """Test that the last throttling error is raised unchanged."""
        operation = MagicMock(side_effect=ThrottlingError("slow down"))

        with pytest.raises(ThrottlingError):
            with_backoff(3, operation, throttled, base_delay=0, max_delay=0)

        assert operation.call_count == 3

    def test_zero_attempts_still_calls_once(self):
        operation = MagicMock(return_value=42)

        assert with_backoff(0, operation, throttled, base_delay=0, max_delay=0) == 42
        assert operation.call_count == 1

    def test_backoff_and_giveup_logged_once_each(self, mocker):
        """Test that only the structured handlers log retries and the final give-up."""
        log = mocker.patch("cloudsync.worker.utils.retry.logger")
        operation = MagicMock(side_effect=ThrottlingError("slow down"))

        with pytest.raises(ThrottlingError):
            with_backoff(3, operation, throttled, base_delay=0, max_delay=0)

        assert log.warning.call_count == 2
        assert log.error.call_count == 1
        assert log.error.call_args.kwargs["attempts"] == 3
