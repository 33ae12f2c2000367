"""
Unit tests for the sync task state machine.

Tests task creation and validation, listing limits, the retry budget and
the conditional progress updates against the in-memory database.
"""

from unittest.mock import MagicMock

import pytest

from cloudsync.shared.errors import (
    AlreadyRunningError,
    InvalidTaskStateError,
    MaxRetriesExceededError,
    SyncTaskNotFoundError,
    ValidationError,
)
from cloudsync.shared.models.domain import (
    SyncTargetType,
    SyncTaskFilter,
    SyncTaskStatus,
    SyncTaskType,
)
from cloudsync.shared.models.requests import CreateSyncTaskRequest
from cloudsync.shared.repositories.base import utcnow
from cloudsync.worker.sync.tasks import SyncTaskService


def permission_request(**overrides):
    values = dict(
        task_type="permission_sync",
        target_type="user",
        target_id=7,
        cloud_account_id=1,
        provider="aws",
    )
    values.update(overrides)
    return values


@pytest.fixture
def service(task_repo):
    """SyncTaskService over the in-memory repository."""
    return SyncTaskService(task_repo)


def fail_task(service, task_id, message="boom"):
    service.mark_running(task_id)
    service.mark_failed(task_id, message)


class TestCreateSyncTask:
    """Test task creation and request validation."""

    def test_create_returns_pending_task(self, service, task_repo):
        """Test that a new task starts pending with no progress or retries."""
        task = service.create_sync_task(permission_request())

        stored = task_repo.get_by_id(task.id)
        assert stored.status == SyncTaskStatus.PENDING
        assert stored.progress == 0
        assert stored.retry_count == 0
        assert stored.max_retries == 3
        assert stored.task_type == SyncTaskType.PERMISSION_SYNC
        assert stored.target_type == SyncTargetType.USER
        assert stored.target_id == 7
        assert stored.error_message == ""

    def test_create_accepts_request_model(self, service):
        """Test that a pydantic request is accepted as is."""
        request = CreateSyncTaskRequest(**permission_request(max_retries=5, params={"regions": ["us-east-1"]}))

        task = service.create_sync_task(request)

        assert task.max_retries == 5
        assert task.params == {"regions": ["us-east-1"]}

    def test_create_coerces_numeric_strings(self, service):
        """Test that dict input goes through pydantic coercion."""
        task = service.create_sync_task(permission_request(target_id="12"))

        assert task.target_id == 12

    @pytest.mark.parametrize(
        "field", ["task_type", "target_type", "target_id", "cloud_account_id", "provider"]
    )
    def test_create_rejects_missing_field(self, service, task_repo, field):
        """Test that every required field is enforced and nothing is stored."""
        request = permission_request()
        request.pop(field)

        with pytest.raises(ValidationError, match=field):
            service.create_sync_task(request)

        _, total = task_repo.list(SyncTaskFilter())
        assert total == 0

    def test_create_rejects_zero_target(self, service):
        """Test that a zero target id counts as missing."""
        with pytest.raises(ValidationError, match="target_id"):
            service.create_sync_task(permission_request(target_id=0))

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"task_type": "full_sync"}, "invalid task_type"),
            ({"target_type": "planet"}, "invalid target_type"),
            ({"target_id": "abc"}, "invalid sync task request"),
            ({"max_retries": -1}, "invalid sync task request"),
        ],
    )
    def test_create_rejects_invalid_values(self, service, overrides, message):
        """Test that malformed values surface as ValidationError."""
        with pytest.raises(ValidationError, match=message):
            service.create_sync_task(permission_request(**overrides))

    def test_get_missing_task_raises(self, service):
        """Test that looking up an unknown id raises SyncTaskNotFoundError."""
        with pytest.raises(SyncTaskNotFoundError):
            service.get_sync_task_status(999)


class TestListSyncTasks:
    """Test task listing."""

    def test_list_returns_newest_first(self, service):
        """Test ordering and total count."""
        ids = [service.create_sync_task(permission_request(target_id=i)).id for i in (1, 2, 3)]

        tasks, total = service.list_sync_tasks(SyncTaskFilter())

        assert total == 3
        assert [t.id for t in tasks] == list(reversed(ids))

    def test_list_limit_defaults_and_cap(self, service):
        """Test that the page size defaults to 20 and is capped at 100."""
        default_filter = SyncTaskFilter(limit=0)
        service.list_sync_tasks(default_filter)
        assert default_filter.limit == 20

        big_filter = SyncTaskFilter(limit=500, offset=-3)
        service.list_sync_tasks(big_filter)
        assert big_filter.limit == 100
        assert big_filter.offset == 0

    def test_list_filters_by_status(self, service):
        """Test that the status filter narrows the page."""
        first = service.create_sync_task(permission_request(target_id=1))
        service.create_sync_task(permission_request(target_id=2))
        fail_task(service, first.id)

        tasks, total = service.list_sync_tasks(SyncTaskFilter(status=SyncTaskStatus.FAILED))

        assert total == 1
        assert tasks[0].id == first.id


class TestRetrySyncTask:
    """Test the retry budget."""

    def test_retry_moves_failed_task_back_to_pending(self, service):
        """Test that a retry consumes one unit of budget."""
        task = service.create_sync_task(permission_request())
        fail_task(service, task.id)

        retried = service.retry_sync_task(task.id)

        assert retried.status == SyncTaskStatus.PENDING
        assert retried.retry_count == 1

    def test_retry_at_budget_raises_without_mutation(self, service, task_repo):
        """Test that an exhausted task is left exactly as it was."""
        task = service.create_sync_task(permission_request(max_retries=1))
        fail_task(service, task.id)
        service.retry_sync_task(task.id)
        fail_task(service, task.id, "boom again")

        with pytest.raises(MaxRetriesExceededError):
            service.retry_sync_task(task.id)

        stored = task_repo.get_by_id(task.id)
        assert stored.status == SyncTaskStatus.FAILED
        assert stored.retry_count == 1
        assert stored.error_message == "boom again"

    def test_retry_with_zero_budget_raises(self, service):
        """Test that max_retries=0 forbids any retry."""
        task = service.create_sync_task(permission_request(max_retries=0))
        fail_task(service, task.id)

        with pytest.raises(MaxRetriesExceededError):
            service.retry_sync_task(task.id)

    def test_retry_of_non_failed_task_raises(self, service, task_repo):
        """Test that only failed tasks can be retried."""
        task = service.create_sync_task(permission_request())

        with pytest.raises(MaxRetriesExceededError, match="pending"):
            service.retry_sync_task(task.id)

        assert task_repo.get_by_id(task.id).retry_count == 0

    def test_retry_lost_race_raises(self, service, mocker):
        """Test that losing the conditional update is reported as exhausted."""
        task = service.create_sync_task(permission_request())
        fail_task(service, task.id)
        mocker.patch.object(service.tasks, "increment_retry", return_value=False)

        with pytest.raises(MaxRetriesExceededError):
            service.retry_sync_task(task.id)


class TestTransitions:
    """Test executor-facing transitions."""

    def test_mark_running_twice_raises(self, service):
        """Test that the running guard admits one caller only."""
        task = service.create_sync_task(permission_request())
        service.mark_running(task.id)

        with pytest.raises(AlreadyRunningError):
            service.mark_running(task.id)

    def test_mark_running_after_retry_clears_previous_failure(self, service, task_repo):
        """Test that a retried task starts its next run from a clean slate."""
        task = service.create_sync_task(permission_request())
        service.mark_running(task.id)
        service.update_progress(task.id, 50)
        service.mark_failed(task.id, "boom")
        service.retry_sync_task(task.id)

        service.mark_running(task.id)

        stored = task_repo.get_by_id(task.id)
        assert stored.status == SyncTaskStatus.RUNNING
        assert stored.progress == 0
        assert stored.error_message == ""
        assert stored.end_time is None

    def test_mark_running_rejects_failed_task(self, service, task_repo):
        """Test that a failed task cannot run again without going through retry."""
        task = service.create_sync_task(permission_request())
        fail_task(service, task.id)

        with pytest.raises(InvalidTaskStateError, match="failed"):
            service.mark_running(task.id)

        stored = task_repo.get_by_id(task.id)
        assert stored.status == SyncTaskStatus.FAILED
        assert stored.error_message == "boom"
        assert stored.retry_count == 0

    def test_mark_running_rejects_succeeded_task(self, service, task_repo):
        """Test that success is terminal."""
        task = service.create_sync_task(permission_request())
        service.mark_running(task.id)
        service.mark_success(task.id)
        finished = task_repo.get_by_id(task.id)

        with pytest.raises(InvalidTaskStateError, match="success"):
            service.mark_running(task.id)

        stored = task_repo.get_by_id(task.id)
        assert stored.status == SyncTaskStatus.SUCCESS
        assert stored.end_time == finished.end_time

    def test_repository_claims_pending_tasks_only(self, service, task_repo):
        """Test that the conditional update matches pending rows and nothing else."""
        task = service.create_sync_task(permission_request())

        assert task_repo.mark_as_running(task.id, utcnow()) is True
        assert task_repo.mark_as_running(task.id, utcnow()) is False
        task_repo.mark_as_failed(task.id, utcnow(), "boom")
        assert task_repo.mark_as_running(task.id, utcnow()) is False
        task_repo.increment_retry(task.id)
        assert task_repo.mark_as_running(task.id, utcnow()) is False
        task_repo.update_status(task.id, SyncTaskStatus.PENDING)
        assert task_repo.mark_as_running(task.id, utcnow()) is True

    def test_mark_success_forces_full_progress(self, service, task_repo):
        """Test that success implies progress 100 and an end time."""
        task = service.create_sync_task(permission_request())
        service.mark_running(task.id)
        service.update_progress(task.id, 30)

        service.mark_success(task.id)

        stored = task_repo.get_by_id(task.id)
        assert stored.status == SyncTaskStatus.SUCCESS
        assert stored.progress == 100
        assert stored.end_time is not None
        assert stored.start_time <= stored.end_time

    def test_progress_never_decreases(self, service, task_repo):
        """Test that a lower progress value is ignored."""
        task = service.create_sync_task(permission_request())
        service.mark_running(task.id)

        service.update_progress(task.id, 40)
        service.update_progress(task.id, 20)

        assert task_repo.get_by_id(task.id).progress == 40

    def test_progress_is_clamped(self, service, task_repo):
        """Test that out of range values are clamped to 0-100."""
        task = service.create_sync_task(permission_request())
        service.mark_running(task.id)

        service.update_progress(task.id, 150)

        assert task_repo.get_by_id(task.id).progress == 100

    def test_progress_ignored_unless_running(self, service, task_repo):
        """Test that progress only moves while the task runs."""
        task = service.create_sync_task(permission_request())

        service.update_progress(task.id, 60)

        assert task_repo.get_by_id(task.id).progress == 0

    def test_progress_errors_are_swallowed(self):
        """Test that a failing progress write never propagates."""
        repo = MagicMock()
        repo.update_progress.side_effect = RuntimeError("database is locked")
        service = SyncTaskService(repo)

        service.update_progress(1, 50)

        repo.update_progress.assert_called_once_with(1, 50)
