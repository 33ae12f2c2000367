"""Wiring of the sync engine and the operations it exposes to callers."""

# flake8: noqa: E501


import asyncio
from typing import Any, Dict, List, Optional, Tuple, Union

from pydal import DAL

from cloudsync.shared.errors import ConnectionTimeoutError
from cloudsync.shared.models.domain import PermissionPolicy, SyncTask, SyncTaskFilter
from cloudsync.shared.models.requests import CreateSyncTaskRequest
from cloudsync.shared.repositories import (
    AuditLogRepository,
    CloudAccountRepository,
    CloudUserRepository,
    InstanceRepository,
    PermissionGroupRepository,
    SyncTaskRepository,
)
from cloudsync.worker.cloud.factory import AdapterFactory
from cloudsync.worker.cloud.registry import AdapterRegistry, build_default_registry
from cloudsync.worker.config.settings import settings
from cloudsync.worker.sync.base import UserSyncResult
from cloudsync.worker.sync.executor import TaskExecutor
from cloudsync.worker.sync.propagation import PermissionGroupService
from cloudsync.worker.sync.queue import TaskQueue
from cloudsync.worker.sync.reconciler import ReconciliationEngine
from cloudsync.worker.sync.routines import SyncRoutines
from cloudsync.worker.sync.scheduler import AutoSyncScheduler, SweepScheduler
from cloudsync.worker.sync.tasks import SyncTaskService
from cloudsync.worker.sync.users import UserSyncService
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


class SyncService:
    """Facade over the task state machine, executor, propagation and sweeps.

    Build it with ``SyncService.build``; the components stay reachable as
    attributes for callers that need them directly.
    """

    def __init__(
        self,
        tasks: SyncTaskService,
        executor: TaskExecutor,
        queue: TaskQueue,
        groups: PermissionGroupService,
        user_sync: UserSyncService,
        sweeps: SweepScheduler,
        auto_sync: AutoSyncScheduler,
        factory: AdapterFactory,
        accounts: CloudAccountRepository,
    ):
        self.tasks = tasks
        self.executor = executor
        self.queue = queue
        self.groups = groups
        self.user_sync = user_sync
        self.sweeps = sweeps
        self.auto_sync = auto_sync
        self.factory = factory
        self.accounts = accounts

    @classmethod
    def build(
        cls,
        db: DAL,
        db_read: Optional[DAL] = None,
        registry: Optional[AdapterRegistry] = None,
        timeout: Optional[float] = None,
    ) -> "SyncService":
        """Wire every component over one database.

        Args:
            db: PyDAL write connection with all tables defined
            db_read: Optional read replica
            registry: Provider registry (defaults to every bundled provider)
            timeout: Task execution deadline override
        """
        task_repo = SyncTaskRepository(db, db_read)
        accounts = CloudAccountRepository(db, db_read)
        users = CloudUserRepository(db, db_read)
        groups = PermissionGroupRepository(db, db_read)
        audit = AuditLogRepository(db, db_read)
        instances = InstanceRepository(db, db_read)

        factory = AdapterFactory(registry or build_default_registry())
        tasks = SyncTaskService(task_repo)
        engine = ReconciliationEngine(instances)
        user_sync = UserSyncService(accounts, users, factory, tasks)
        routines = SyncRoutines(tasks, accounts, users, groups, factory, engine, user_sync)
        executor = TaskExecutor(tasks, routines, timeout=timeout)
        queue = TaskQueue(executor)

        user_sync.queue = queue
        group_service = PermissionGroupService(groups, users, audit, tasks, queue=queue)
        sweeps = SweepScheduler(tasks, executor)
        auto_sync = AutoSyncScheduler(accounts, tasks, queue=queue)
        return cls(tasks, executor, queue, group_service, user_sync, sweeps, auto_sync, factory, accounts)

    # ==========================================
    # Task operations
    # ==========================================

    def create_sync_task(self, request: Union[CreateSyncTaskRequest, Dict[str, Any]], dispatch: bool = False) -> SyncTask:
        """Create a task; with ``dispatch`` it is also queued for execution."""
        task = self.tasks.create_sync_task(request)
        if dispatch:
            self.queue.try_submit(task.id)
        return task

    async def execute_sync_task(self, task_id: int) -> None:
        await self.executor.execute(task_id)

    def get_sync_task_status(self, task_id: int) -> SyncTask:
        return self.tasks.get_sync_task_status(task_id)

    def list_sync_tasks(self, task_filter: SyncTaskFilter) -> Tuple[List[SyncTask], int]:
        return self.tasks.list_sync_tasks(task_filter)

    def retry_sync_task(self, task_id: int) -> SyncTask:
        return self.tasks.retry_sync_task(task_id)

    # ==========================================
    # Permissions and users
    # ==========================================

    def update_policies(self, group_id: int, policies: List[PermissionPolicy], operator: str = "system") -> List[SyncTask]:
        return self.groups.update_policies(group_id, policies, operator=operator)

    def sync_permission_changes(self, group_id: int, user_ids: List[int]) -> List[SyncTask]:
        return self.groups.sync_permission_changes(group_id, user_ids)

    async def sync_users(self, account_id: int) -> UserSyncResult:
        return await self.user_sync.sync_users(account_id)

    def sync_users_async(self, account_id: int) -> SyncTask:
        return self.user_sync.sync_users_async(account_id)

    def clear_account_cache(self, provider: str, account_id: int) -> None:
        """Drop a cached adapter, e.g. after its credentials were rotated."""
        self.factory.clear_account_cache(provider, account_id)

    async def validate_account(self, account_id: int) -> Dict[str, Any]:
        """Check an account's credentials against its provider.

        Runs under validation_timeout, which is shorter than the task deadline.

        Returns:
            Caller identity details reported by the provider

        Raises:
            AccountNotFoundError: If the account does not exist
            ConnectionTimeoutError: If the provider does not answer in time
            CloudError: If the provider rejects the credentials
        """
        account = self.accounts.get_by_id(account_id)
        adapter = self.factory.create_adapter(account)
        timeout = settings.validation_timeout
        try:
            identity = await asyncio.wait_for(asyncio.to_thread(adapter.validate_credentials), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("credential validation timed out", account_id=account_id, provider=account.provider, timeout=timeout)
            raise ConnectionTimeoutError(f"credential validation exceeded its {timeout}s deadline", provider=account.provider)
        logger.info("account credentials validated", account_id=account_id, provider=account.provider)
        return identity

    # ==========================================
    # Sweeps
    # ==========================================

    async def process_pending_tasks(self, max_concurrent: Optional[int] = None) -> int:
        return await self.sweeps.process_pending_tasks(max_concurrent)

    async def process_failed_tasks(self) -> int:
        return await self.sweeps.process_failed_tasks()
