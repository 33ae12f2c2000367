"""Propagation of permission group edits to cloud identities.

Editing a group's policy set fans out into one permission-sync task per
(affected user, targeted platform). Task creation failures are logged and
skipped; propagation never stops half way because of one user.
"""

# flake8: noqa: E501


from typing import List, Optional

from cloudsync.shared.errors import ValidationError
from cloudsync.shared.models.domain import (
    VALID_PROVIDERS,
    AuditLog,
    CloudUser,
    PermissionGroup,
    PermissionPolicy,
    PolicyType,
    SyncTargetType,
    SyncTask,
    SyncTaskType,
    UserStatus,
)
from cloudsync.shared.models.requests import CreateSyncTaskRequest
from cloudsync.shared.repositories import (
    AuditLogRepository,
    CloudUserRepository,
    PermissionGroupRepository,
)
from cloudsync.worker.config.settings import settings
from cloudsync.worker.metrics import propagation_tasks_created
from cloudsync.worker.sync.tasks import SyncTaskService
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)

AUDIT_UPDATE_GROUP_POLICIES = "update_group_policies"


def validate_policies(policies: List[PermissionPolicy]) -> None:
    """Check a policy set before it replaces a group's policies.

    Raises:
        ValidationError: On the first invalid policy
    """
    if not policies:
        raise ValidationError("policy list must not be empty")

    valid_types = {t.value for t in PolicyType}
    seen = set()
    for i, policy in enumerate(policies, start=1):
        if not policy.policy_id:
            raise ValidationError(f"policy {i}: policy_id is required")
        if not policy.policy_name:
            raise ValidationError(f"policy {i}: policy_name is required")
        if not policy.provider:
            raise ValidationError(f"policy {i}: provider is required")
        if policy.provider not in VALID_PROVIDERS:
            raise ValidationError(f"policy {i}: unsupported provider '{policy.provider}'")
        if policy.policy_type not in valid_types:
            raise ValidationError(f"policy {i}: invalid policy_type '{policy.policy_type}'")
        if policy.key in seen:
            raise ValidationError(f"policy {i}: duplicate policy {policy.policy_id} for {policy.provider}")
        seen.add(policy.key)


class PermissionGroupService:
    """Policy edits on permission groups and their fan-out."""

    def __init__(
        self,
        groups: PermissionGroupRepository,
        users: CloudUserRepository,
        audit: AuditLogRepository,
        tasks: SyncTaskService,
        queue=None,
        page_size: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            groups: Permission group persistence
            users: Cloud user persistence
            audit: Audit trail
            tasks: Task state machine used to create permission-sync tasks
            queue: Optional TaskQueue; created tasks are submitted to it
            page_size: Users scanned per propagation (defaults to propagation_user_page_size)
        """
        self.groups = groups
        self.users = users
        self.audit = audit
        self.tasks = tasks
        self.queue = queue
        self.page_size = page_size or settings.propagation_user_page_size

    def update_policies(self, group_id: int, policies: List[PermissionPolicy], operator: str = "system") -> List[SyncTask]:
        """Replace a group's policies and propagate the change.

        Args:
            group_id: Group to edit
            policies: New policy set
            operator: Who made the change, recorded in the audit trail

        Returns:
            Permission-sync tasks created by the propagation

        Raises:
            PermissionGroupNotFoundError: If the group does not exist
            ValidationError: If the policy set is invalid
        """
        group = self.groups.get_by_id(group_id)
        validate_policies(policies)

        old_policies = group.policies
        added = [p.policy_id for p in policies if not group.has_policy(p.policy_id, p.provider)]
        self.groups.update_policies(group_id, policies)
        group.policies = list(policies)
        removed = [p.policy_id for p in old_policies if not group.has_policy(p.policy_id, p.provider)]
        logger.info("group policies updated", group_id=group_id, added=added, removed=removed, new_count=len(policies))

        try:
            self.audit.create(
                AuditLog(
                    operation=AUDIT_UPDATE_GROUP_POLICIES,
                    target_type=SyncTargetType.GROUP.value,
                    target_id=group_id,
                    tenant_id=group.tenant_id,
                    before=[p.to_dict() for p in old_policies],
                    after=[p.to_dict() for p in policies],
                    operator=operator,
                )
            )
        except Exception as e:
            logger.warning("failed to write audit record", group_id=group_id, error=str(e))

        return self.propagate(group)

    def affected_users(self, group: PermissionGroup) -> List[CloudUser]:
        """Active users of the group's tenant that reference the group."""
        candidates = self.users.list(tenant_id=group.tenant_id, status=UserStatus.ACTIVE, limit=self.page_size)
        if len(candidates) >= self.page_size:
            logger.warning(
                "user scan hit the page size, some users may be missed",
                group_id=group.id,
                page_size=self.page_size,
            )
        return [u for u in candidates if u.in_group(group.id)]

    def propagate(self, group: PermissionGroup) -> List[SyncTask]:
        """Create one permission-sync task per (affected user, group platform)."""
        affected = self.affected_users(group)
        created: List[SyncTask] = []
        for user in affected:
            created.extend(self._create_user_tasks(group, user))

        logger.info(
            "group policy change propagated",
            group_id=group.id,
            affected_users=len(affected),
            tasks_created=len(created),
        )
        return created

    def sync_permission_changes(self, group_id: int, user_ids: List[int]) -> List[SyncTask]:
        """Create permission-sync tasks for the given members of a group.

        Users that cannot be loaded or do not belong to the group are skipped.

        Raises:
            ValidationError: If ``user_ids`` is empty
            PermissionGroupNotFoundError: If the group does not exist
        """
        if not user_ids:
            raise ValidationError("user_ids must not be empty")
        group = self.groups.get_by_id(group_id)

        created: List[SyncTask] = []
        for user_id in user_ids:
            try:
                user = self.users.get_by_id(user_id)
            except Exception as e:
                logger.warning("failed to load user, skipping", user_id=user_id, error=str(e))
                continue
            if not user.in_group(group_id):
                logger.debug("user is not in the group, skipping", user_id=user_id, group_id=group_id)
                continue
            created.extend(self._create_user_tasks(group, user))

        logger.info("permission changes synced", group_id=group_id, user_count=len(user_ids), tasks_created=len(created))
        return created

    def _create_user_tasks(self, group: PermissionGroup, user: CloudUser) -> List[SyncTask]:
        created = []
        for platform in group.cloud_platforms:
            try:
                task = self.tasks.create_sync_task(
                    CreateSyncTaskRequest(
                        task_type=SyncTaskType.PERMISSION_SYNC.value,
                        target_type=SyncTargetType.USER.value,
                        target_id=user.id,
                        cloud_account_id=user.cloud_account_id,
                        provider=platform,
                    )
                )
            except Exception as e:
                logger.warning(
                    "failed to create permission sync task, skipping",
                    user_id=user.id,
                    provider=platform,
                    error=str(e),
                )
                continue
            propagation_tasks_created.labels(provider=platform).inc()
            if self.queue is not None:
                self.queue.try_submit(task.id)
            created.append(task)
        return created
