"""PyDAL persistence for sync tasks.

The store is the source of truth for whether a task is running. Every
state transition is a single conditional UPDATE so two executors racing on
the same task id cannot both win.
"""

# flake8: noqa: E501

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from cloudsync.shared.errors import SyncTaskNotFoundError
from cloudsync.shared.models.domain import (
    SyncTargetType,
    SyncTask,
    SyncTaskFilter,
    SyncTaskStatus,
    SyncTaskType,
)
from cloudsync.shared.repositories.base import BaseRepository, as_utc, utcnow


class SyncTaskRepository(BaseRepository):
    """Create, read and transition sync tasks."""

    table_name = "sync_tasks"

    @staticmethod
    def _to_task(row) -> SyncTask:
        return SyncTask(
            id=row.id,
            task_type=SyncTaskType(row.task_type),
            target_type=SyncTargetType(row.target_type),
            target_id=row.target_id,
            cloud_account_id=row.cloud_account_id,
            provider=row.provider,
            status=SyncTaskStatus(row.status),
            progress=row.progress or 0,
            retry_count=row.retry_count or 0,
            max_retries=row.max_retries if row.max_retries is not None else 3,
            error_message=row.error_message or "",
            params=row.params or {},
            result=row.result or {},
            start_time=as_utc(row.start_time),
            end_time=as_utc(row.end_time),
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def create(self, task: SyncTask) -> SyncTask:
        now = utcnow()
        task_id = self.table.insert(
            task_type=task.task_type.value,
            target_type=task.target_type.value,
            target_id=task.target_id,
            cloud_account_id=task.cloud_account_id,
            provider=task.provider,
            status=task.status.value,
            progress=task.progress,
            retry_count=task.retry_count,
            max_retries=task.max_retries,
            error_message=task.error_message,
            params=task.params,
            result=task.result,
            created_at=now,
            updated_at=now,
        )
        self.db.commit()
        task.id = task_id
        task.created_at = now
        task.updated_at = now
        return task

    def get_by_id(self, task_id: int) -> SyncTask:
        """Fetch a task from the primary.

        Raises:
            SyncTaskNotFoundError: If no task has this id
        """
        row = self.db(self.table.id == task_id).select().first()
        if row is None:
            raise SyncTaskNotFoundError(f"sync task {task_id} not found")
        return self._to_task(row)

    def list(self, task_filter: SyncTaskFilter) -> Tuple[List[SyncTask], int]:
        """List tasks newest first.

        Returns:
            (page of tasks, total matching count)
        """
        t = self.read_table
        query = t.id > 0
        if task_filter.task_type:
            query &= t.task_type == task_filter.task_type.value
        if task_filter.status:
            query &= t.status == task_filter.status.value
        if task_filter.target_type:
            query &= t.target_type == task_filter.target_type.value
        if task_filter.target_id:
            query &= t.target_id == task_filter.target_id
        if task_filter.cloud_account_id:
            query &= t.cloud_account_id == task_filter.cloud_account_id
        if task_filter.provider:
            query &= t.provider == task_filter.provider

        total = self.db_read(query).count()
        start = max(0, task_filter.offset)
        rows = self.db_read(query).select(
            orderby=~t.id, limitby=(start, start + task_filter.limit)
        )
        return [self._to_task(r) for r in rows], total

    def update_status(self, task_id: int, status: SyncTaskStatus) -> int:
        count = self.db(self.table.id == task_id).update(status=status.value)
        self.db.commit()
        return count

    def update_progress(self, task_id: int, progress: int) -> int:
        """Raise progress of a running task. Never lowers it.

        Returns:
            Number of rows changed (0 if not running or progress would drop)
        """
        t = self.table
        count = self.db(
            (t.id == task_id)
            & (t.status == SyncTaskStatus.RUNNING.value)
            & (t.progress <= progress)
        ).update(progress=progress)
        self.db.commit()
        return count

    def mark_as_running(self, task_id: int, start_time: datetime) -> bool:
        """Transition a pending task to running.

        Returns:
            True if this caller won the transition (False if the task was
            not pending, including when another caller claimed it first)
        """
        t = self.table
        count = self.db(
            (t.id == task_id) & (t.status == SyncTaskStatus.PENDING.value)
        ).update(
            status=SyncTaskStatus.RUNNING.value,
            start_time=start_time,
            end_time=None,
            progress=0,
            error_message="",
        )
        self.db.commit()
        return count == 1

    def mark_as_success(self, task_id: int, end_time: datetime) -> int:
        count = self.db(self.table.id == task_id).update(
            status=SyncTaskStatus.SUCCESS.value,
            progress=100,
            end_time=end_time,
            error_message="",
        )
        self.db.commit()
        return count

    def mark_as_failed(self, task_id: int, end_time: datetime, message: str) -> int:
        count = self.db(self.table.id == task_id).update(
            status=SyncTaskStatus.FAILED.value,
            end_time=end_time,
            error_message=message,
        )
        self.db.commit()
        return count

    def increment_retry(self, task_id: int) -> bool:
        """Consume one retry and move a failed task to retrying.

        Returns:
            True if the task was failed with budget left
        """
        t = self.table
        count = self.db(
            (t.id == task_id)
            & (t.status == SyncTaskStatus.FAILED.value)
            & (t.retry_count < t.max_retries)
        ).update(
            retry_count=t.retry_count + 1,
            status=SyncTaskStatus.RETRYING.value,
        )
        self.db.commit()
        return count == 1

    def save_result(self, task_id: int, result: Dict[str, Any]) -> int:
        count = self.db(self.table.id == task_id).update(result=result)
        self.db.commit()
        return count

    def list_pending_tasks(self, limit: int) -> List[SyncTask]:
        """Oldest pending tasks first."""
        t = self.table
        rows = self.db(t.status == SyncTaskStatus.PENDING.value).select(
            orderby=t.id, limitby=(0, limit)
        )
        return [self._to_task(r) for r in rows]

    def list_failed_retryable_tasks(self, limit: int) -> List[SyncTask]:
        t = self.table
        rows = self.db(
            (t.status == SyncTaskStatus.FAILED.value) & (t.retry_count < t.max_retries)
        ).select(orderby=t.end_time, limitby=(0, limit))
        return [self._to_task(r) for r in rows]

    def has_open_task(self, cloud_account_id: int, task_type: SyncTaskType) -> bool:
        """Whether a pending, retrying or running task of this type exists for the account."""
        t = self.table
        open_states = [
            SyncTaskStatus.PENDING.value,
            SyncTaskStatus.RETRYING.value,
            SyncTaskStatus.RUNNING.value,
        ]
        return (
            self.db(
                (t.cloud_account_id == cloud_account_id)
                & (t.task_type == task_type.value)
                & (t.status.belongs(open_states))
            ).count()
            > 0
        )
