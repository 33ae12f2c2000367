"""PyDAL implementations of the persistence interfaces used by the sync engine."""

# flake8: noqa: E501


from cloudsync.shared.repositories.accounts import CloudAccountRepository
from cloudsync.shared.repositories.assets import InstanceRepository
from cloudsync.shared.repositories.iam import (
    AuditLogRepository,
    CloudUserRepository,
    PermissionGroupRepository,
)
from cloudsync.shared.repositories.sync_tasks import SyncTaskRepository

__all__ = [
    "AuditLogRepository",
    "CloudAccountRepository",
    "CloudUserRepository",
    "InstanceRepository",
    "PermissionGroupRepository",
    "SyncTaskRepository",
]
