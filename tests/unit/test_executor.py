"""
Unit tests for TaskExecutor.

Routines are replaced with stubs so only the executor's bookkeeping is
under test: the pending-only claim, the deadline, and how outcomes are recorded.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudsync.shared.errors import (
    AlreadyRunningError,
    CloudSyncError,
    InvalidTaskStateError,
    SyncTaskNotFoundError,
)
from cloudsync.shared.models.domain import SyncTaskStatus
from cloudsync.worker.sync.executor import TaskExecutor
from cloudsync.worker.sync.tasks import SyncTaskService


@pytest.fixture
def tasks(task_repo):
    return SyncTaskService(task_repo)


@pytest.fixture
def routines():
    stub = MagicMock()
    stub.run = AsyncMock(return_value=None)
    return stub


@pytest.fixture
def executor(tasks, routines):
    return TaskExecutor(tasks, routines, timeout=5)


@pytest.fixture
def task(tasks):
    return tasks.create_sync_task(
        {
            "task_type": "batch_user_sync",
            "target_type": "account",
            "target_id": 1,
            "cloud_account_id": 1,
            "provider": "aws",
        }
    )


class TestTaskExecutor:
    """Test TaskExecutor.execute."""

    @pytest.mark.asyncio
    async def test_success_records_full_progress(self, executor, routines, tasks, task):
        await executor.execute(task.id)

        stored = tasks.get_sync_task_status(task.id)
        assert stored.status == SyncTaskStatus.SUCCESS
        assert stored.progress == 100
        assert stored.error_message == ""
        assert stored.start_time is not None
        assert stored.end_time is not None
        routines.run.assert_awaited_once()
        assert routines.run.await_args.args[0].id == task.id

    @pytest.mark.asyncio
    async def test_failure_records_error_text(self, executor, routines, tasks, task):
        routines.run.side_effect = CloudSyncError("provider said no")

        await executor.execute(task.id)

        stored = tasks.get_sync_task_status(task.id)
        assert stored.status == SyncTaskStatus.FAILED
        assert stored.error_message == "provider said no"
        assert stored.end_time is not None

    @pytest.mark.asyncio
    async def test_failure_without_message_uses_class_name(self, executor, routines, tasks, task):
        routines.run.side_effect = RuntimeError()

        await executor.execute(task.id)

        assert tasks.get_sync_task_status(task.id).error_message == "RuntimeError"

    @pytest.mark.asyncio
    async def test_deadline_marks_task_failed(self, tasks, routines, task):
        """Test that a routine overrunning the deadline fails with a timeout."""

        async def slow(_task):
            await asyncio.sleep(5)

        routines.run = slow
        executor = TaskExecutor(tasks, routines, timeout=0.05)

        await executor.execute(task.id)

        stored = tasks.get_sync_task_status(task.id)
        assert stored.status == SyncTaskStatus.FAILED
        assert "deadline" in stored.error_message

    @pytest.mark.asyncio
    async def test_already_running_leaves_task_untouched(self, executor, routines, tasks, task):
        """Test that a second execution is rejected without side effects."""
        tasks.mark_running(task.id)
        tasks.update_progress(task.id, 40)
        before = tasks.get_sync_task_status(task.id)

        with pytest.raises(AlreadyRunningError):
            await executor.execute(task.id)

        after = tasks.get_sync_task_status(task.id)
        assert after.status == SyncTaskStatus.RUNNING
        assert after.progress == 40
        assert after.start_time == before.start_time
        assert after.error_message == before.error_message
        routines.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_task_raises(self, executor, routines):
        with pytest.raises(SyncTaskNotFoundError):
            await executor.execute(404)

        routines.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancellation_leaves_task_retryable(self, tasks, routines, task):
        """Test that a cancelled execution does not stay in running."""
        started = asyncio.Event()

        async def blocking(_task):
            started.set()
            await asyncio.sleep(5)

        routines.run = blocking
        executor = TaskExecutor(tasks, routines, timeout=10)

        running = asyncio.create_task(executor.execute(task.id))
        await started.wait()
        running.cancel()
        with pytest.raises(asyncio.CancelledError):
            await running

        stored = tasks.get_sync_task_status(task.id)
        assert stored.status == SyncTaskStatus.FAILED
        assert stored.error_message == "sync task cancelled"
        assert stored.can_retry()

    @pytest.mark.asyncio
    async def test_retried_task_runs_clean(self, executor, routines, tasks, task):
        """Test that a retry after failure ends in success with the error cleared."""
        routines.run.side_effect = [CloudSyncError("first attempt"), None]
        await executor.execute(task.id)
        tasks.retry_sync_task(task.id)

        await executor.execute(task.id)

        stored = tasks.get_sync_task_status(task.id)
        assert stored.status == SyncTaskStatus.SUCCESS
        assert stored.retry_count == 1
        assert stored.error_message == ""

    @pytest.mark.asyncio
    async def test_succeeded_task_is_not_run_again(self, executor, routines, tasks, task):
        """Test that executing a finished task is rejected and the routine runs once."""
        await executor.execute(task.id)
        finished = tasks.get_sync_task_status(task.id)

        with pytest.raises(InvalidTaskStateError):
            await executor.execute(task.id)

        assert routines.run.await_count == 1
        stored = tasks.get_sync_task_status(task.id)
        assert stored.status == SyncTaskStatus.SUCCESS
        assert stored.end_time == finished.end_time

    @pytest.mark.asyncio
    async def test_failed_task_needs_retry_before_running_again(self, executor, routines, tasks, task):
        """Test that repeated execution of a failed task cannot bypass the retry budget."""
        routines.run.side_effect = CloudSyncError("always broken")
        await executor.execute(task.id)

        for _ in range(5):
            with pytest.raises(InvalidTaskStateError):
                await executor.execute(task.id)

        assert routines.run.await_count == 1
        stored = tasks.get_sync_task_status(task.id)
        assert stored.status == SyncTaskStatus.FAILED
        assert stored.retry_count == 0
        assert stored.error_message == "always broken"

    @pytest.mark.asyncio
    async def test_retry_budget_bounds_executions(self, executor, routines, tasks, task):
        """Test that a task that always fails runs at most 1 + max_retries times."""
        routines.run.side_effect = CloudSyncError("always broken")
        await executor.execute(task.id)

        while tasks.get_sync_task_status(task.id).can_retry():
            tasks.retry_sync_task(task.id)
            await executor.execute(task.id)

        stored = tasks.get_sync_task_status(task.id)
        assert routines.run.await_count == 1 + stored.max_retries
        assert stored.retry_count == stored.max_retries
        assert stored.status == SyncTaskStatus.FAILED
