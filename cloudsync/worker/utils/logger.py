"""Structured logging for the sync worker.

structlog renders every event and hands it to a standard library handler on
stdout. Task context (task id, correlation id) is kept in structlog
contextvars, so lines logged by routines and by adapter calls running in
worker threads carry the id of the task that triggered them.
"""

# flake8: noqa: E501


import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog

from cloudsync.worker.config.settings import settings

QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "apscheduler")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the stdout handler and the structlog processor chain.

    Args:
        level: Override for the configured log level
    """
    root_logger = logging.getLogger()
    log_level = (level or settings.log_level).upper()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Clear existing handlers
    root_logger.handlers = []
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.processors.KeyValueRenderer(
            key_order=["timestamp", "level", "event", "correlation_id"], drop_missing=True
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> Any:
    """Get a structlog logger, optionally with values bound up front.

    Args:
        name: Logger name (typically __name__)
        **initial_values: Key/value pairs added to every event of this logger
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def create_correlation_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def task_log_context(task_id: int, correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a task's id and a correlation id for everything logged inside the block.

    Each asyncio task has its own context, so concurrent executions do not
    see each other's values.

    Yields:
        The correlation id in effect
    """
    correlation_id = correlation_id or create_correlation_id()
    with structlog.contextvars.bound_contextvars(task_id=task_id, correlation_id=correlation_id):
        yield correlation_id
