"""Reconciliation of an account's cloud users.

Provider users are the source of truth. New users are created active,
changed users are updated in place (keeping their permission groups) and
users that disappeared upstream are soft-deleted.
"""

# flake8: noqa: E501


import asyncio
from typing import Dict, List, Optional

from cloudsync.shared.models.domain import (
    CloudAccount,
    CloudUser,
    SyncTargetType,
    SyncTask,
    SyncTaskType,
    UserStatus,
)
from cloudsync.shared.models.requests import CreateSyncTaskRequest
from cloudsync.shared.repositories import CloudAccountRepository, CloudUserRepository
from cloudsync.shared.repositories.base import utcnow
from cloudsync.worker.cloud.base import CloudAdapter
from cloudsync.worker.cloud.factory import AdapterFactory
from cloudsync.worker.sync.base import UserSyncResult
from cloudsync.worker.sync.tasks import SyncTaskService
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)

# Account task params value restricting a batch sync to users
USERS_ONLY_SCOPE = "users"


def apply_user_changes(local: CloudUser, remote: CloudUser) -> List[str]:
    """Copy provider-reported fields onto ``local``.

    Returns:
        Names of the fields that changed
    """
    changed = []
    for attr in ("username", "display_name", "email", "user_type"):
        new = getattr(remote, attr)
        if new and getattr(local, attr) != new:
            setattr(local, attr, new)
            changed.append(attr)

    for attr in ("access_key_count", "mfa_enabled", "tags"):
        new = getattr(remote.metadata, attr)
        if getattr(local.metadata, attr) != new:
            setattr(local.metadata, attr, new)
            changed.append(attr)

    if remote.metadata.last_login_time:
        local.metadata.last_login_time = remote.metadata.last_login_time
    return changed


class UserSyncService:
    """Synchronous and queued entry points for user reconciliation."""

    def __init__(
        self,
        accounts: CloudAccountRepository,
        users: CloudUserRepository,
        factory: AdapterFactory,
        tasks: Optional[SyncTaskService] = None,
        queue=None,
    ):
        self.accounts = accounts
        self.users = users
        self.factory = factory
        self.tasks = tasks
        self.queue = queue

    async def reconcile_users(self, account: CloudAccount, adapter: CloudAdapter) -> UserSyncResult:
        """Bring the local users of ``account`` in line with the provider."""
        remote_users = await asyncio.to_thread(adapter.identity.list_users)
        local_by_id: Dict[str, CloudUser] = {u.cloud_user_id: u for u in self.users.list_by_account(account.id)}
        now = utcnow()
        result = UserSyncResult(total=len(remote_users))
        seen = set()

        for remote in remote_users:
            seen.add(remote.cloud_user_id)
            local = local_by_id.get(remote.cloud_user_id)
            try:
                if local is None:
                    remote.tenant_id = account.tenant_id
                    remote.cloud_account_id = account.id
                    remote.provider = account.provider
                    remote.status = UserStatus.ACTIVE
                    remote.metadata.last_sync_time = now
                    self.users.create(remote)
                    result.added += 1
                    continue

                changed = apply_user_changes(local, remote)
                if local.status != UserStatus.ACTIVE:
                    local.status = UserStatus.ACTIVE
                    changed.append("status")
                if changed:
                    local.metadata.last_sync_time = now
                    self.users.update(local)
                    result.updated += 1
                else:
                    result.unchanged += 1
            except Exception as e:
                logger.warning("failed to store cloud user", account_id=account.id, username=remote.username, error=str(e))
                result.errors.append(f"{remote.username}: {e}")

        for cloud_user_id, local in local_by_id.items():
            if cloud_user_id in seen or local.status == UserStatus.DELETED:
                continue
            try:
                self.users.soft_delete(local.id)
                result.deleted += 1
            except Exception as e:
                logger.warning("failed to soft-delete cloud user", user_id=local.id, error=str(e))
                result.errors.append(f"{local.username}: {e}")

        logger.info("cloud users reconciled", account_id=account.id, provider=account.provider, **result.to_dict())
        return result

    async def sync_users(self, account_id: int) -> UserSyncResult:
        """Reconcile the users of an account and wait for the outcome.

        Raises:
            AccountNotFoundError: If the account does not exist
            CloudError: If the adapter cannot be created or the listing fails
        """
        account = self.accounts.get_by_id(account_id)
        adapter = self.factory.create_adapter(account)
        return await self.reconcile_users(account, adapter)

    def sync_users_async(self, account_id: int) -> SyncTask:
        """Create a users-only account task and queue it.

        Returns:
            The created task; poll it for the outcome
        """
        if self.tasks is None:
            raise RuntimeError("UserSyncService was built without a task service")
        account = self.accounts.get_by_id(account_id)
        task = self.tasks.create_sync_task(
            CreateSyncTaskRequest(
                task_type=SyncTaskType.BATCH_USER_SYNC.value,
                target_type=SyncTargetType.ACCOUNT.value,
                target_id=account.id,
                cloud_account_id=account.id,
                provider=account.provider,
                params={"scope": USERS_ONLY_SCOPE},
            )
        )
        if self.queue is not None:
            self.queue.try_submit(task.id)
        return task
