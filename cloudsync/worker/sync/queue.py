"""In-process task queue drained by a bounded pool of worker coroutines.

Submitting returns as soon as the task id is queued; execution happens in
the workers through the same TaskExecutor.execute entry point the sweeps
use. A task id that cannot be queued stays pending in the store and is
picked up by the next pending sweep.
"""

# flake8: noqa: E501


import asyncio
from typing import List, Optional

from cloudsync.shared.errors import (
    AlreadyRunningError,
    InvalidTaskStateError,
    NotFoundError,
    QueueClosedError,
    QueueFullError,
)
from cloudsync.worker.config.settings import settings
from cloudsync.worker.metrics import queue_depth
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


class TaskQueue:
    """Bounded queue of sync task ids."""

    def __init__(self, executor, workers: Optional[int] = None, maxsize: Optional[int] = None):
        """Initialize the queue.

        Args:
            executor: TaskExecutor used by the workers
            workers: Number of worker coroutines (defaults to queue_workers)
            maxsize: Queue capacity (defaults to queue_size)
        """
        self.executor = executor
        self.worker_count = workers or settings.queue_workers
        self.maxsize = maxsize or settings.queue_size
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.maxsize)
        self._workers: List[asyncio.Task] = []
        self._closed = False

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def submit(self, task_id: int) -> int:
        """Queue a task id for execution and return it immediately.

        Raises:
            QueueClosedError: If the queue has been stopped
            QueueFullError: If no slot is free
        """
        if self._closed:
            raise QueueClosedError("task queue is stopped")
        try:
            self._queue.put_nowait(task_id)
        except asyncio.QueueFull:
            raise QueueFullError(f"task queue is full ({self.maxsize} queued)")
        queue_depth.set(self._queue.qsize())
        logger.debug("task submitted", task_id=task_id, queued=self._queue.qsize())
        return task_id

    def try_submit(self, task_id: int) -> bool:
        """Submit, logging instead of raising when the queue cannot take the id."""
        try:
            self.submit(task_id)
            return True
        except (QueueFullError, QueueClosedError) as e:
            logger.warning("task left pending for the sweep", task_id=task_id, reason=str(e))
            return False

    async def start(self) -> None:
        if self._workers:
            return
        self._closed = False
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"cloudsync-queue-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("task queue started", workers=self.worker_count, maxsize=self.maxsize)

    async def stop(self, drain: bool = False) -> None:
        """Stop accepting work and shut the workers down.

        Args:
            drain: Wait for already queued ids to finish first
        """
        self._closed = True
        if drain:
            await self._queue.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("task queue stopped", pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued id has been processed."""
        await self._queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            task_id = await self._queue.get()
            queue_depth.set(self._queue.qsize())
            try:
                await self.executor.execute(task_id)
            except AlreadyRunningError:
                logger.info("task already running, skipped", task_id=task_id, worker=index)
            except InvalidTaskStateError as e:
                logger.info("task no longer pending, skipped", task_id=task_id, worker=index, reason=str(e))
            except NotFoundError as e:
                logger.warning("queued task not found", task_id=task_id, error=str(e))
            except Exception as e:
                logger.error("queue worker failed to execute task", task_id=task_id, error=str(e), exc_info=True)
            finally:
                self._queue.task_done()
