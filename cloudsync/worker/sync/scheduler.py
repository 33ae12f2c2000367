"""Periodic sweeps and account auto-sync.

The pending sweep executes tasks nobody dispatched (or that the queue could
not take). The failed sweep retries failed tasks once their backoff window
has passed. The auto-sync check creates account sync tasks for accounts
whose configured interval has elapsed.
"""

# flake8: noqa: E501


import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cloudsync.shared.errors import (
    AlreadyRunningError,
    CloudSyncError,
    InvalidTaskStateError,
    MaxRetriesExceededError,
)
from cloudsync.shared.models.domain import (
    CloudAccount,
    SyncTargetType,
    SyncTask,
    SyncTaskType,
)
from cloudsync.shared.models.requests import CreateSyncTaskRequest
from cloudsync.shared.repositories import CloudAccountRepository
from cloudsync.shared.repositories.base import utcnow
from cloudsync.worker.config.settings import settings
from cloudsync.worker.metrics import sweep_duration
from cloudsync.worker.sync.executor import TaskExecutor
from cloudsync.worker.sync.tasks import SyncTaskService
from cloudsync.worker.utils.logger import get_logger
from cloudsync.worker.utils.retry import compute_backoff_delay

logger = get_logger(__name__)


class SweepScheduler:
    """Pending and failed task sweeps."""

    def __init__(self, tasks: SyncTaskService, executor: TaskExecutor):
        """Initialize the sweeps.

        Args:
            tasks: Task state machine
            executor: Executor shared with the task queue
        """
        self.tasks = tasks
        self.executor = executor
        self.scheduler = AsyncIOScheduler()

    async def _execute(self, task_id: int) -> bool:
        try:
            await self.executor.execute(task_id)
            return True
        except AlreadyRunningError:
            logger.debug("task already running, skipped by sweep", task_id=task_id)
        except InvalidTaskStateError as e:
            logger.debug("task no longer pending, skipped by sweep", task_id=task_id, reason=str(e))
        except CloudSyncError as e:
            logger.warning("sweep could not execute task", task_id=task_id, error=str(e))
        return False

    async def process_pending_tasks(self, max_concurrent: Optional[int] = None) -> int:
        """Execute up to ``max_concurrent`` pending tasks concurrently.

        Returns:
            Number of tasks the executor accepted
        """
        limit = max_concurrent or settings.pending_sweep_concurrency
        with sweep_duration.labels(sweep="pending").time():
            pending = self.tasks.list_pending_tasks(limit)
            if not pending:
                return 0

            semaphore = asyncio.Semaphore(limit)

            async def run(task: SyncTask) -> bool:
                async with semaphore:
                    return await self._execute(task.id)

            results = await asyncio.gather(*[run(t) for t in pending])

        executed = sum(1 for r in results if r)
        logger.info("pending sweep finished", found=len(pending), executed=executed)
        return executed

    def is_due_for_retry(self, task: SyncTask, now: datetime) -> bool:
        """Whether the task's backoff window (from its end time) has elapsed."""
        if task.end_time is None:
            return True
        delay = compute_backoff_delay(task.retry_count)
        return now - task.end_time >= timedelta(seconds=delay)

    async def process_failed_tasks(self) -> int:
        """Retry and re-execute failed tasks whose backoff window has passed.

        Returns:
            Number of tasks retried
        """
        with sweep_duration.labels(sweep="failed").time():
            now = utcnow()
            retried: List[int] = []
            for task in self.tasks.list_failed_retryable_tasks(settings.failed_sweep_batch_size):
                if not self.is_due_for_retry(task, now):
                    logger.debug("task still in backoff window", task_id=task.id, retry_count=task.retry_count)
                    continue
                try:
                    self.tasks.retry_sync_task(task.id)
                except MaxRetriesExceededError as e:
                    logger.info("task no longer retryable", task_id=task.id, reason=str(e))
                    continue
                retried.append(task.id)

            await asyncio.gather(*[self._execute(task_id) for task_id in retried])

        if retried:
            logger.info("failed sweep finished", retried=len(retried))
        return len(retried)

    def start(self) -> None:
        """Schedule both sweeps on the running event loop."""
        self.scheduler.add_job(
            self.process_pending_tasks,
            trigger=IntervalTrigger(seconds=settings.pending_sweep_interval),
            id="pending_task_sweep",
            name="Pending Task Sweep",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.process_failed_tasks,
            trigger=IntervalTrigger(seconds=settings.failed_sweep_interval),
            id="failed_task_sweep",
            name="Failed Task Sweep",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            "task sweeps scheduled",
            pending_interval=settings.pending_sweep_interval,
            failed_interval=settings.failed_sweep_interval,
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("task sweeps stopped")


class AutoSyncScheduler:
    """Creates account sync tasks for accounts with auto-sync enabled."""

    def __init__(self, accounts: CloudAccountRepository, tasks: SyncTaskService, queue=None):
        self.accounts = accounts
        self.tasks = tasks
        self.queue = queue
        self.scheduler = AsyncIOScheduler()

    @staticmethod
    def is_due(account: CloudAccount, now: datetime) -> bool:
        config = account.config
        if not account.is_active() or not config.enable_auto_sync or config.sync_interval <= 0:
            return False
        if account.last_sync_time is None:
            return True
        return now - account.last_sync_time >= timedelta(minutes=config.sync_interval)

    def due_accounts(self, now: Optional[datetime] = None) -> List[CloudAccount]:
        now = now or utcnow()
        due = []
        for account in self.accounts.list_active():
            if not self.is_due(account, now):
                continue
            if self.tasks.has_open_task(account.id, SyncTaskType.BATCH_USER_SYNC):
                logger.debug("account already has an open sync task", account_id=account.id)
                continue
            due.append(account)
        return due

    async def check_and_sync(self) -> List[SyncTask]:
        """Create and submit one account sync task per due account."""
        created = []
        for account in self.due_accounts():
            try:
                task = self.tasks.create_sync_task(
                    CreateSyncTaskRequest(
                        task_type=SyncTaskType.BATCH_USER_SYNC.value,
                        target_type=SyncTargetType.ACCOUNT.value,
                        target_id=account.id,
                        cloud_account_id=account.id,
                        provider=account.provider,
                    )
                )
            except CloudSyncError as e:
                logger.warning("failed to create auto-sync task", account_id=account.id, error=str(e))
                continue
            if self.queue is not None:
                self.queue.try_submit(task.id)
            created.append(task)

        if created:
            logger.info("auto-sync tasks created", count=len(created))
        return created

    def start(self) -> None:
        self.scheduler.add_job(
            self.check_and_sync,
            trigger=IntervalTrigger(seconds=settings.auto_sync_check_interval),
            id="auto_sync_check",
            name="Account Auto Sync",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("auto-sync scheduled", interval=settings.auto_sync_check_interval)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("auto-sync stopped")
