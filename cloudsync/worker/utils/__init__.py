"""Utility modules for the sync worker."""

# flake8: noqa: E501


from cloudsync.worker.utils.logger import configure_logging, get_logger, task_log_context
from cloudsync.worker.utils.rate_limiter import RateLimiter
from cloudsync.worker.utils.retry import compute_backoff_delay, with_backoff

__all__ = [
    "configure_logging",
    "task_log_context",
    "get_logger",
    "RateLimiter",
    "compute_backoff_delay",
    "with_backoff",
]
