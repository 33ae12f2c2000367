"""
Unit tests for the pending/failed sweeps and account auto-sync.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudsync.shared.errors import AlreadyRunningError
from cloudsync.shared.models.domain import (
    AccountConfig,
    AccountStatus,
    SyncTargetType,
    SyncTask,
    SyncTaskStatus,
    SyncTaskType,
)
from cloudsync.shared.repositories.base import utcnow
from cloudsync.worker.sync.executor import TaskExecutor
from cloudsync.worker.sync.scheduler import AutoSyncScheduler, SweepScheduler
from cloudsync.worker.sync.tasks import SyncTaskService
from tests.fakes import make_account


@pytest.fixture
def tasks(task_repo):
    return SyncTaskService(task_repo)


@pytest.fixture
def executor():
    stub = MagicMock()
    stub.execute = AsyncMock(return_value=None)
    return stub


@pytest.fixture
def sweeps(tasks, executor):
    return SweepScheduler(tasks, executor)


def new_task(tasks, target_id=1, **overrides):
    request = {
        "task_type": "permission_sync",
        "target_type": "user",
        "target_id": target_id,
        "cloud_account_id": 1,
        "provider": "aws",
    }
    request.update(overrides)
    return tasks.create_sync_task(request)


def failed_task(retry_count, seconds_ago):
    return SyncTask(
        task_type=SyncTaskType.PERMISSION_SYNC,
        target_type=SyncTargetType.USER,
        target_id=1,
        cloud_account_id=1,
        provider="aws",
        status=SyncTaskStatus.FAILED,
        retry_count=retry_count,
        end_time=utcnow() - timedelta(seconds=seconds_ago) if seconds_ago is not None else None,
    )


class TestPendingSweep:
    """Test SweepScheduler.process_pending_tasks."""

    @pytest.mark.asyncio
    async def test_executes_oldest_pending_up_to_limit(self, sweeps, tasks, executor):
        first, second, _ = [new_task(tasks, target_id=i) for i in (1, 2, 3)]

        executed = await sweeps.process_pending_tasks(2)

        assert executed == 2
        assert sorted(c.args[0] for c in executor.execute.await_args_list) == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_nothing_pending(self, sweeps, executor):
        assert await sweeps.process_pending_tasks(5) == 0
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_executions_are_not_counted(self, sweeps, tasks, executor):
        """Test that a task another worker is running is skipped quietly."""
        new_task(tasks, target_id=1)
        new_task(tasks, target_id=2)
        executor.execute.side_effect = [None, AlreadyRunningError("busy")]

        assert await sweeps.process_pending_tasks(5) == 1

    @pytest.mark.asyncio
    async def test_task_finished_elsewhere_is_not_rerun(self, tasks, mocker):
        """Test that a stale pending listing cannot re-execute a task another worker completed."""
        routines = MagicMock()
        routines.run = AsyncMock(return_value=None)
        executor = TaskExecutor(tasks, routines, timeout=5)
        sweeps = SweepScheduler(tasks, executor)
        task = new_task(tasks)
        stale = tasks.list_pending_tasks(5)
        await executor.execute(task.id)
        mocker.patch.object(tasks, "list_pending_tasks", return_value=stale)

        assert await sweeps.process_pending_tasks(5) == 0

        assert routines.run.await_count == 1
        assert tasks.get_sync_task_status(task.id).status == SyncTaskStatus.SUCCESS


class TestFailedSweep:
    """Test the backoff window and SweepScheduler.process_failed_tasks."""

    @pytest.mark.parametrize(
        "retry_count,seconds_ago,due",
        [
            (0, 5, False),
            (0, 15, True),
            (2, 30, False),
            (2, 45, True),
            (9, 200, False),
            (9, 301, True),
            (0, None, True),
        ],
    )
    def test_is_due_for_retry(self, sweeps, retry_count, seconds_ago, due):
        assert sweeps.is_due_for_retry(failed_task(retry_count, seconds_ago), utcnow()) is due

    @pytest.mark.asyncio
    async def test_retries_only_tasks_past_their_window(self, sweeps, tasks, executor, db):
        old = new_task(tasks, target_id=1)
        recent = new_task(tasks, target_id=2)
        for task in (old, recent):
            tasks.mark_running(task.id)
            tasks.mark_failed(task.id, "boom")
        db(db.sync_tasks.id == old.id).update(end_time=utcnow() - timedelta(minutes=10))
        db.commit()

        retried = await sweeps.process_failed_tasks()

        assert retried == 1
        executor.execute.assert_awaited_once_with(old.id)
        assert tasks.get_sync_task_status(old.id).retry_count == 1
        assert tasks.get_sync_task_status(old.id).status == SyncTaskStatus.PENDING
        assert tasks.get_sync_task_status(recent.id).status == SyncTaskStatus.FAILED
        assert tasks.get_sync_task_status(recent.id).retry_count == 0

    @pytest.mark.asyncio
    async def test_exhausted_tasks_are_ignored(self, sweeps, tasks, executor):
        task = new_task(tasks, max_retries=0)
        tasks.mark_running(task.id)
        tasks.mark_failed(task.id, "boom")

        assert await sweeps.process_failed_tasks() == 0
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_schedules_both_sweeps(self, sweeps):
        sweeps.start()
        try:
            assert {job.id for job in sweeps.scheduler.get_jobs()} == {
                "pending_task_sweep",
                "failed_task_sweep",
            }
        finally:
            sweeps.stop()


class TestAutoSync:
    """Test AutoSyncScheduler."""

    @pytest.mark.parametrize(
        "overrides,minutes_ago,due",
        [
            ({}, None, True),
            ({}, 5, False),
            ({}, 15, True),
            ({"status": AccountStatus.DISABLED}, None, False),
            ({"config": AccountConfig(enable_auto_sync=False, sync_interval=10)}, None, False),
            ({"config": AccountConfig(enable_auto_sync=True, sync_interval=0)}, None, False),
        ],
    )
    def test_is_due(self, overrides, minutes_ago, due):
        values = {"config": AccountConfig(enable_auto_sync=True, sync_interval=10)}
        values.update(overrides)
        now = utcnow()
        if minutes_ago is not None:
            values["last_sync_time"] = now - timedelta(minutes=minutes_ago)

        assert AutoSyncScheduler.is_due(make_account(**values), now) is due

    @pytest.mark.asyncio
    async def test_check_and_sync_creates_one_task_per_due_account(self, account_repo, tasks):
        due = account_repo.create(make_account(config=AccountConfig(enable_auto_sync=True, sync_interval=10)))
        account_repo.create(make_account(name="manual"))
        queue = MagicMock()
        auto_sync = AutoSyncScheduler(account_repo, tasks, queue=queue)

        created = await auto_sync.check_and_sync()

        assert len(created) == 1
        assert created[0].task_type == SyncTaskType.BATCH_USER_SYNC
        assert created[0].target_id == due.id
        queue.try_submit.assert_called_once_with(created[0].id)

        assert await auto_sync.check_and_sync() == []
