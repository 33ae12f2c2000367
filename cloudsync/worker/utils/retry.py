"""Retry-with-backoff helper shared by every outbound provider call."""

# flake8: noqa: E501


from typing import Callable, Optional, TypeVar

import backoff

from cloudsync.worker.config.settings import settings
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def compute_backoff_delay(
    attempt: int,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> float:
    """Delay before the next attempt: ``base * 2**attempt`` capped at ``max_delay``.

    Args:
        attempt: Zero-based number of attempts (or retries) already made
        base_delay: Delay for attempt 0 (defaults to task_retry_base_delay)
        max_delay: Ceiling (defaults to task_retry_max_delay)

    Returns:
        Delay in seconds
    """
    base = settings.task_retry_base_delay if base_delay is None else base_delay
    ceiling = settings.task_retry_max_delay if max_delay is None else max_delay
    if attempt < 0:
        attempt = 0
    # Avoid huge powers once the ceiling is reached
    if attempt >= 32:
        return float(ceiling)
    return float(min(base * (2**attempt), ceiling))


def _log_backoff(details: dict) -> None:
    logger.warning(
        "provider call throttled, backing off",
        attempt=details["tries"],
        wait_seconds=round(details["wait"], 3),
        error=str(details.get("exception")),
    )


def _log_giveup(details: dict) -> None:
    logger.error(
        "provider call gave up",
        attempts=details["tries"],
        error=str(details.get("exception")),
    )


def with_backoff(
    max_attempts: int,
    operation: Callable[[], T],
    is_retryable: Callable[[Exception], bool],
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> T:
    """Run ``operation``, retrying with exponential delay while ``is_retryable`` says so.

    Non-retryable errors are raised immediately. When attempts run out the
    last error is raised unchanged so callers can still classify it.

    Args:
        max_attempts: Total attempts including the first call
        operation: Zero-argument callable performing the remote call
        is_retryable: Provider-specific classifier (usually throttling)
        base_delay: First delay in seconds (defaults to adapter_retry_base_delay)
        max_delay: Delay ceiling (defaults to adapter_retry_max_delay)

    Returns:
        Whatever ``operation`` returns
    """
    factor = settings.adapter_retry_base_delay if base_delay is None else base_delay
    ceiling = settings.adapter_retry_max_delay if max_delay is None else max_delay

    retrying = backoff.on_exception(
        backoff.expo,
        Exception,
        max_tries=max(1, max_attempts),
        giveup=lambda e: not is_retryable(e),
        raise_on_giveup=True,
        jitter=None,
        on_backoff=_log_backoff,
        on_giveup=_log_giveup,
        logger=None,
        factor=factor,
        max_value=ceiling,
    )(operation)
    return retrying()
