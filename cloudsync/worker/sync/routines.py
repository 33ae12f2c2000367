"""Work performed for each sync task kind.

Each routine receives the task and reports progress through the task
service at fixed checkpoints. Adapter calls run in worker threads; all
database access stays on the event loop thread.
"""

# flake8: noqa: E501


import asyncio
from typing import Awaitable, Callable, Dict, List

from cloudsync.shared.errors import (
    CloudSyncError,
    PermissionGroupNotFoundError,
    RegionNotSupportedError,
    ValidationError,
)
from cloudsync.shared.models.domain import (
    CloudAccount,
    PermissionPolicy,
    SyncTargetType,
    SyncTask,
    SyncTaskType,
)
from cloudsync.shared.repositories import (
    CloudAccountRepository,
    CloudUserRepository,
    PermissionGroupRepository,
)
from cloudsync.shared.repositories.base import utcnow
from cloudsync.worker.cloud.base import CloudAdapter, ResourceKind
from cloudsync.worker.cloud.factory import AdapterFactory
from cloudsync.worker.sync.base import AccountSyncResult, StepResult
from cloudsync.worker.sync.kinds import expand_asset_types
from cloudsync.worker.sync.reconciler import ReconciliationEngine
from cloudsync.worker.sync.tasks import SyncTaskService
from cloudsync.worker.sync.users import USERS_ONLY_SCOPE, UserSyncService
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)

# Account sync progress checkpoints
PROGRESS_ACCOUNT_LOADED = 10
PROGRESS_ADAPTER_READY = 20
PROGRESS_USERS_SYNCED = 25
PROGRESS_REGIONS_RESOLVED = 30
PROGRESS_STEPS_SPAN = 60
PROGRESS_BOOKKEEPING = 95

EXPECTED_TARGETS = {
    SyncTaskType.USER_SYNC: SyncTargetType.USER,
    SyncTaskType.PERMISSION_SYNC: SyncTargetType.USER,
    SyncTaskType.GROUP_SYNC: SyncTargetType.GROUP,
    SyncTaskType.BATCH_USER_SYNC: SyncTargetType.ACCOUNT,
}


def collect_group_policies(groups: PermissionGroupRepository, group_ids: List[int], provider: str) -> List[PermissionPolicy]:
    """Union of the policies of ``group_ids`` that target ``provider``.

    Groups that no longer exist are skipped with a warning. Duplicate
    (policy_id, provider) pairs are collapsed.
    """
    union: Dict[tuple, PermissionPolicy] = {}
    for group_id in group_ids:
        try:
            group = groups.get_by_id(group_id)
        except PermissionGroupNotFoundError:
            logger.warning("permission group missing, skipping", group_id=group_id)
            continue
        for policy in group.policies_for(provider):
            union.setdefault(policy.key, policy)
    return list(union.values())


class SyncRoutines:
    """Dispatches a task to the routine for its kind."""

    def __init__(
        self,
        tasks: SyncTaskService,
        accounts: CloudAccountRepository,
        users: CloudUserRepository,
        groups: PermissionGroupRepository,
        factory: AdapterFactory,
        engine: ReconciliationEngine,
        user_sync: UserSyncService,
    ):
        self.tasks = tasks
        self.accounts = accounts
        self.users = users
        self.groups = groups
        self.factory = factory
        self.engine = engine
        self.user_sync = user_sync
        self._handlers: Dict[SyncTaskType, Callable[[SyncTask], Awaitable[None]]] = {
            SyncTaskType.USER_SYNC: self.sync_user,
            SyncTaskType.PERMISSION_SYNC: self.sync_permissions,
            SyncTaskType.GROUP_SYNC: self.sync_group,
            SyncTaskType.BATCH_USER_SYNC: self.sync_account,
        }

    async def run(self, task: SyncTask) -> None:
        """Run the routine for ``task``. Any exception means the task failed."""
        expected = EXPECTED_TARGETS[task.task_type]
        if task.target_type != expected:
            raise ValidationError(
                f"{task.task_type.value} expects target {expected.value}, got {task.target_type.value}"
            )
        await self._handlers[task.task_type](task)

    def _progress(self, task: SyncTask, value: int) -> None:
        self.tasks.update_progress(task.id, value)

    # ==========================================
    # Single user
    # ==========================================

    async def sync_user(self, task: SyncTask) -> None:
        """Refresh one user's profile and metadata from the provider."""
        user = self.users.get_by_id(task.target_id)
        account = self.accounts.get_by_id(task.cloud_account_id)
        adapter = self.factory.create_adapter(account)

        remote = await asyncio.to_thread(adapter.identity.get_user, user.cloud_user_id)
        self._progress(task, 30)

        user.display_name = remote.display_name or user.display_name
        user.email = remote.email or user.email
        user.metadata = remote.metadata
        user.metadata.last_sync_time = utcnow()
        self._progress(task, 60)

        self.users.update(user)
        self._progress(task, 100)
        logger.info("user synced", task_id=task.id, user_id=user.id)

    async def sync_permissions(self, task: SyncTask) -> None:
        """Make the user's provider-side policies match the union of their groups."""
        user = self.users.get_by_id(task.target_id)
        account = self.accounts.get_by_id(task.cloud_account_id)
        if account.provider != task.provider:
            # The group targets a platform this user's account is not on
            self.tasks.save_result(task.id, {"skipped": f"account {account.id} is on {account.provider}, not {task.provider}"})
            logger.info(
                "permission sync skipped, provider mismatch",
                task_id=task.id,
                account_provider=account.provider,
                task_provider=task.provider,
            )
            return
        adapter = self.factory.create_adapter(account)
        self._progress(task, 20)

        policies = collect_group_policies(self.groups, user.permission_groups, task.provider)
        self._progress(task, 50)

        result = await asyncio.to_thread(adapter.identity.update_user_permissions, user.cloud_user_id, policies)
        self.tasks.save_result(task.id, result.to_dict())
        self._progress(task, 100)
        logger.info(
            "permissions synced",
            task_id=task.id,
            user_id=user.id,
            policy_count=len(policies),
            attached=len(result.attached),
            detached=len(result.detached),
        )

    # ==========================================
    # Group
    # ==========================================

    async def sync_group(self, task: SyncTask) -> None:
        """Push a permission group's policies to the provider group of the same name."""
        group = self.groups.get_by_id(task.target_id)
        account = self.accounts.get_by_id(task.cloud_account_id)
        adapter = self.factory.create_adapter(account)
        identity = adapter.identity

        remote_groups = await asyncio.to_thread(identity.list_groups)
        remote = next((g for g in remote_groups if g.group_name == group.name), None)
        if remote is None:
            remote = await asyncio.to_thread(identity.create_group, group.name, group.description)
            logger.info("provider group created", task_id=task.id, group_name=group.name)
        self._progress(task, 30)

        policies = group.policies_for(task.provider)
        self._progress(task, 60)

        result = await asyncio.to_thread(identity.update_group_policies, remote.group_id, policies)
        self.tasks.save_result(task.id, result.to_dict())
        self._progress(task, 100)

    # ==========================================
    # Account
    # ==========================================

    async def resolve_regions(self, task: SyncTask, account: CloudAccount, adapter: CloudAdapter) -> List[str]:
        """Regions from task params, account config, account regions, then the provider."""
        for candidate in (
            task.params.get("regions"),
            account.config.supported_regions,
            account.regions,
        ):
            if candidate:
                return list(dict.fromkeys(candidate))
        return await asyncio.to_thread(adapter.list_regions)

    async def sync_account(self, task: SyncTask) -> None:
        """Reconcile an account's users and every (region, kind) pair of its assets.

        A failing step is recorded in the task result and does not stop the
        remaining steps. The task fails only when every attempted step failed.
        """
        account = self.accounts.get_by_id(task.target_id)
        self._progress(task, PROGRESS_ACCOUNT_LOADED)

        adapter = self.factory.create_adapter(account)
        self._progress(task, PROGRESS_ADAPTER_READY)

        summary = AccountSyncResult(account_id=account.id)
        if adapter.supports_capability(ResourceKind.IDENTITY):
            try:
                users = await self.user_sync.reconcile_users(account, adapter)
                summary.users = users.to_dict()
            except CloudSyncError as e:
                logger.warning("user reconciliation failed", account_id=account.id, error=str(e))
                summary.users = {"error": str(e)}
        self._progress(task, PROGRESS_USERS_SYNCED)

        if task.params.get("scope") == USERS_ONLY_SCOPE:
            self.tasks.save_result(task.id, summary.to_dict())
            if "error" in summary.users:
                raise CloudSyncError(f"user reconciliation failed: {summary.users['error']}")
            return

        summary.regions = await self.resolve_regions(task, account, adapter)
        self._progress(task, PROGRESS_REGIONS_RESOLVED)

        kinds = expand_asset_types(task.params.get("asset_types") or account.config.supported_asset_types)
        steps = [(region, kind) for region in summary.regions for kind in kinds]
        log = logger.bind(task_id=task.id, account_id=account.id, provider=account.provider)
        log.info("account sync started", regions=summary.regions, kinds=[k.value for k in kinds], steps=len(steps))

        for i, (region, kind) in enumerate(steps, start=1):
            if not adapter.supports_capability(kind):
                summary.steps.append(StepResult(region, kind.value, status="skipped", error="not supported by provider"))
            else:
                try:
                    synced = await self.engine.reconcile(account.tenant_id, account, adapter, kind, region)
                    summary.steps.append(StepResult(region, kind.value, synced=synced))
                except RegionNotSupportedError as e:
                    log.info("region not available for kind, skipped", region=region, kind=kind.value, error=str(e))
                    summary.steps.append(StepResult(region, kind.value, status="skipped", error=str(e)))
                except Exception as e:
                    log.warning("sync step failed", region=region, kind=kind.value, error=str(e))
                    summary.steps.append(StepResult(region, kind.value, status="failed", error=str(e) or e.__class__.__name__))
            self._progress(task, PROGRESS_REGIONS_RESOLVED + PROGRESS_STEPS_SPAN * i // len(steps))

        self.tasks.save_result(task.id, summary.to_dict())
        if summary.all_failed:
            first = summary.failed_steps[0]
            raise CloudSyncError(
                f"all {len(summary.failed_steps)} sync steps failed, first: {first.region}/{first.kind}: {first.error}"
            )

        asset_count = self.engine.instances.count_by_account(account.tenant_id, account.id)
        self.accounts.update_sync_time(account.id, utcnow(), asset_count=asset_count)
        self._progress(task, PROGRESS_BOOKKEEPING)

        log.info(
            "account sync finished",
            total_synced=summary.total_synced,
            failed_steps=len(summary.failed_steps),
            asset_count=asset_count,
        )
        self._progress(task, 100)
