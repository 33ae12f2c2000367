"""Single entry point that runs a sync task end to end.

The queue workers, the sweeps and direct callers all go through
``TaskExecutor.execute``. Apart from the two rejections a caller can act on
(task missing, task not pending), every outcome ends up in the task's
status and error message.
"""

# flake8: noqa: E501


import asyncio
import time
from typing import Optional

from cloudsync.shared.errors import ConnectionTimeoutError
from cloudsync.shared.models.domain import SyncTask
from cloudsync.worker.config.settings import settings
from cloudsync.worker.metrics import task_duration, task_executions
from cloudsync.worker.sync.routines import SyncRoutines
from cloudsync.worker.sync.tasks import SyncTaskService
from cloudsync.worker.utils.logger import get_logger, task_log_context

logger = get_logger(__name__)


class TaskExecutor:
    """Runs sync tasks under a deadline and records the outcome."""

    def __init__(self, tasks: SyncTaskService, routines: SyncRoutines, timeout: Optional[float] = None):
        """Initialize the executor.

        Args:
            tasks: Task state machine
            routines: Per-kind routines
            timeout: Execution deadline in seconds (defaults to task_execution_timeout)
        """
        self.tasks = tasks
        self.routines = routines
        self.timeout = timeout or settings.task_execution_timeout

    async def execute(self, task_id: int) -> None:
        """Execute one pending task.

        A rejected task is left untouched.

        Raises:
            SyncTaskNotFoundError: If the task does not exist
            AlreadyRunningError: If the task is already running
            InvalidTaskStateError: If the task is not pending
        """
        task = self.tasks.get_sync_task_status(task_id)
        self.tasks.mark_running(task_id)

        with task_log_context(task_id):
            await self._run(task)

    async def _run(self, task: SyncTask) -> None:
        log = logger.bind(task_type=task.task_type.value, provider=task.provider, target_id=task.target_id)
        log.info("sync task started", retry_count=task.retry_count)
        started = time.monotonic()

        try:
            await asyncio.wait_for(self.routines.run(task), timeout=self.timeout)
        except asyncio.TimeoutError:
            # The adapter call in flight keeps running in its thread; its result is discarded
            message = str(ConnectionTimeoutError(f"sync task exceeded its {self.timeout}s deadline", provider=task.provider))
            self.tasks.mark_failed(task.id, message)
            task_executions.labels(task_type=task.task_type.value, status="timeout").inc()
            log.error("sync task timed out", timeout=self.timeout)
        except asyncio.CancelledError:
            # Worker shutdown; leave the task retryable instead of stuck in running
            self.tasks.mark_failed(task.id, "sync task cancelled")
            log.warning("sync task cancelled")
            raise
        except Exception as e:
            message = str(e) or e.__class__.__name__
            self.tasks.mark_failed(task.id, message)
            task_executions.labels(task_type=task.task_type.value, status="failed").inc()
            log.error("sync task failed", error=message, error_type=e.__class__.__name__)
        else:
            self.tasks.mark_success(task.id)
            task_executions.labels(task_type=task.task_type.value, status="success").inc()
            log.info("sync task succeeded", duration=round(time.monotonic() - started, 3))
        finally:
            task_duration.labels(task_type=task.task_type.value).observe(time.monotonic() - started)
