"""Sync task state machine.

States run ``pending -> running -> success | failed`` and a failed task with
retry budget left goes ``failed -> retrying -> pending``. Every transition
is delegated to the repository as a single conditional update; the
``running`` guard there is the only mutual exclusion between executors.
"""

# flake8: noqa: E501


from typing import Any, Dict, List, Tuple, Union

import pydantic

from cloudsync.shared.errors import (
    AlreadyRunningError,
    InvalidTaskStateError,
    MaxRetriesExceededError,
    ValidationError,
)
from cloudsync.shared.models.domain import (
    SyncTargetType,
    SyncTask,
    SyncTaskFilter,
    SyncTaskStatus,
    SyncTaskType,
)
from cloudsync.shared.models.requests import CreateSyncTaskRequest
from cloudsync.shared.repositories import SyncTaskRepository
from cloudsync.shared.repositories.base import utcnow
from cloudsync.worker.config.settings import settings
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100


def _parse_enum(enum_cls, value: str, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"invalid {field_name} '{value}', expected one of: {valid}")


class SyncTaskService:
    """Create, inspect and transition sync tasks."""

    def __init__(self, tasks: SyncTaskRepository):
        """Initialize the service.

        Args:
            tasks: Sync task persistence
        """
        self.tasks = tasks

    # ==========================================
    # Client-facing operations
    # ==========================================

    def create_sync_task(self, request: Union[CreateSyncTaskRequest, Dict[str, Any]]) -> SyncTask:
        """Validate a request and persist a new pending task.

        Args:
            request: CreateSyncTaskRequest or an equivalent dict

        Returns:
            The stored task (status pending, progress 0, retry_count 0)

        Raises:
            ValidationError: If a required field is missing or invalid
        """
        if isinstance(request, dict):
            try:
                request = CreateSyncTaskRequest(**request)
            except pydantic.ValidationError as e:
                raise ValidationError(f"invalid sync task request: {e}") from e

        if not request.task_type:
            raise ValidationError("task_type is required")
        if not request.target_type:
            raise ValidationError("target_type is required")
        if not request.target_id or request.target_id <= 0:
            raise ValidationError("target_id is required")
        if not request.cloud_account_id or request.cloud_account_id <= 0:
            raise ValidationError("cloud_account_id is required")
        if not request.provider:
            raise ValidationError("provider is required")

        task = SyncTask(
            task_type=_parse_enum(SyncTaskType, request.task_type, "task_type"),
            target_type=_parse_enum(SyncTargetType, request.target_type, "target_type"),
            target_id=request.target_id,
            cloud_account_id=request.cloud_account_id,
            provider=request.provider,
            status=SyncTaskStatus.PENDING,
            progress=0,
            retry_count=0,
            max_retries=settings.task_max_retries if request.max_retries is None else request.max_retries,
            params=dict(request.params or {}),
        )
        task = self.tasks.create(task)
        logger.info(
            "sync task created",
            task_id=task.id,
            task_type=task.task_type.value,
            target_type=task.target_type.value,
            target_id=task.target_id,
            provider=task.provider,
        )
        return task

    def get_sync_task_status(self, task_id: int) -> SyncTask:
        """Current state of a task.

        Raises:
            SyncTaskNotFoundError: If the task does not exist
        """
        return self.tasks.get_by_id(task_id)

    def list_sync_tasks(self, task_filter: SyncTaskFilter) -> Tuple[List[SyncTask], int]:
        """List tasks newest first. The page size defaults to 20 and is capped at 100."""
        if task_filter.limit <= 0:
            task_filter.limit = DEFAULT_LIST_LIMIT
        task_filter.limit = min(task_filter.limit, MAX_LIST_LIMIT)
        task_filter.offset = max(0, task_filter.offset)
        return self.tasks.list(task_filter)

    def retry_sync_task(self, task_id: int) -> SyncTask:
        """Send a failed task back to pending, consuming one retry.

        Raises:
            SyncTaskNotFoundError: If the task does not exist
            MaxRetriesExceededError: If the task is not failed or has no budget left
        """
        task = self.tasks.get_by_id(task_id)
        if task.status != SyncTaskStatus.FAILED:
            raise MaxRetriesExceededError(
                f"sync task {task_id} is {task.status.value}, only failed tasks can be retried"
            )
        if task.retry_count >= task.max_retries:
            raise MaxRetriesExceededError(
                f"sync task {task_id} used {task.retry_count} of {task.max_retries} retries"
            )

        if not self.tasks.increment_retry(task_id):
            # Another caller consumed the retry between the read and the update
            raise MaxRetriesExceededError(f"sync task {task_id} can no longer be retried")
        self.tasks.update_status(task_id, SyncTaskStatus.PENDING)

        logger.info("sync task queued for retry", task_id=task_id, retry_count=task.retry_count + 1)
        return self.tasks.get_by_id(task_id)

    def list_pending_tasks(self, limit: int) -> List[SyncTask]:
        return self.tasks.list_pending_tasks(limit)

    def list_failed_retryable_tasks(self, limit: int) -> List[SyncTask]:
        return self.tasks.list_failed_retryable_tasks(limit)

    def has_open_task(self, cloud_account_id: int, task_type: SyncTaskType) -> bool:
        return self.tasks.has_open_task(cloud_account_id, task_type)

    # ==========================================
    # Executor transitions
    # ==========================================

    def mark_running(self, task_id: int) -> None:
        """Claim a pending task for execution.

        Raises:
            AlreadyRunningError: If the task is already running
            InvalidTaskStateError: If the task is finished, failed or waiting on a retry
        """
        if self.tasks.mark_as_running(task_id, utcnow()):
            return
        status = self.tasks.get_by_id(task_id).status
        if status == SyncTaskStatus.RUNNING:
            raise AlreadyRunningError(f"sync task {task_id} is already running")
        raise InvalidTaskStateError(f"sync task {task_id} is {status.value}, only pending tasks can run")

    def mark_success(self, task_id: int) -> None:
        self.tasks.mark_as_success(task_id, utcnow())

    def mark_failed(self, task_id: int, message: str) -> None:
        self.tasks.mark_as_failed(task_id, utcnow(), message)

    def update_progress(self, task_id: int, progress: int) -> None:
        """Record progress of a running task.

        Values are clamped to 0-100. Failures are logged and swallowed so a
        progress write can never abort the task.
        """
        progress = max(0, min(100, int(progress)))
        try:
            self.tasks.update_progress(task_id, progress)
        except Exception as e:
            logger.warning("failed to update task progress", task_id=task_id, progress=progress, error=str(e))

    def save_result(self, task_id: int, result: Dict[str, Any]) -> None:
        try:
            self.tasks.save_result(task_id, result)
        except Exception as e:
            logger.warning("failed to save task result", task_id=task_id, error=str(e))
