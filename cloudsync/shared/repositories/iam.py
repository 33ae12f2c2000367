"""PyDAL persistence for permission groups, cloud users and audit records."""

# flake8: noqa: E501

from typing import List, Optional

from cloudsync.shared.errors import PermissionGroupNotFoundError, UserNotFoundError
from cloudsync.shared.models.domain import (
    AuditLog,
    CloudUser,
    PermissionGroup,
    PermissionPolicy,
    UserMetadata,
    UserStatus,
)
from cloudsync.shared.repositories.base import BaseRepository, as_utc, utcnow


def _dump_policies(policies: List[PermissionPolicy]) -> List[dict]:
    return [p.to_dict() for p in policies]


def _load_policies(data) -> List[PermissionPolicy]:
    return [PermissionPolicy.from_dict(p) for p in (data or [])]


class PermissionGroupRepository(BaseRepository):
    """Permission groups and their policy sets."""

    table_name = "permission_groups"

    @staticmethod
    def _to_group(row) -> PermissionGroup:
        return PermissionGroup(
            id=row.id,
            name=row.name,
            description=row.description or "",
            policies=_load_policies(row.policies),
            cloud_platforms=list(row.cloud_platforms or []),
            tenant_id=row.tenant_id,
            user_count=row.user_count or 0,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def create(self, group: PermissionGroup) -> PermissionGroup:
        group.id = self.table.insert(
            name=group.name,
            description=group.description,
            policies=_dump_policies(group.policies),
            cloud_platforms=group.cloud_platforms,
            tenant_id=group.tenant_id,
            user_count=group.user_count,
        )
        self.db.commit()
        return group

    def get_by_id(self, group_id: int) -> PermissionGroup:
        """Fetch a group.

        Raises:
            PermissionGroupNotFoundError: If no group has this id
        """
        row = self.db(self.table.id == group_id).select().first()
        if row is None:
            raise PermissionGroupNotFoundError(f"permission group {group_id} not found")
        return self._to_group(row)

    def list(self, tenant_id: str) -> List[PermissionGroup]:
        t = self.read_table
        return [self._to_group(r) for r in self.db_read(t.tenant_id == tenant_id).select(orderby=t.id)]

    def update_policies(self, group_id: int, policies: List[PermissionPolicy]) -> None:
        self.db(self.table.id == group_id).update(policies=_dump_policies(policies))
        self.db.commit()


class CloudUserRepository(BaseRepository):
    """Cloud users. Users are soft-deleted, never removed."""

    table_name = "cloud_users"

    @staticmethod
    def _to_user(row) -> CloudUser:
        return CloudUser(
            id=row.id,
            username=row.username,
            user_type=row.user_type or "",
            cloud_account_id=row.cloud_account_id,
            provider=row.provider,
            cloud_user_id=row.cloud_user_id,
            display_name=row.display_name or "",
            email=row.email or "",
            permission_groups=list(row.permission_groups or []),
            policies=_load_policies(row.policies),
            metadata=UserMetadata.from_dict(row.metadata),
            status=UserStatus(row.status or UserStatus.ACTIVE.value),
            tenant_id=row.tenant_id,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def _values(self, user: CloudUser) -> dict:
        return dict(
            username=user.username,
            user_type=user.user_type,
            cloud_account_id=user.cloud_account_id,
            provider=user.provider,
            cloud_user_id=user.cloud_user_id,
            display_name=user.display_name,
            email=user.email,
            permission_groups=list(user.permission_groups),
            policies=_dump_policies(user.policies),
            metadata=user.metadata.to_dict(),
            status=user.status.value,
            tenant_id=user.tenant_id,
        )

    def create(self, user: CloudUser) -> CloudUser:
        now = utcnow()
        user.id = self.table.insert(created_at=now, **self._values(user))
        user.created_at = now
        self.db.commit()
        return user

    def update(self, user: CloudUser) -> None:
        self.db(self.table.id == user.id).update(**self._values(user))
        self.db.commit()

    def get_by_id(self, user_id: int) -> CloudUser:
        """Fetch a user.

        Raises:
            UserNotFoundError: If no user has this id
        """
        row = self.db(self.table.id == user_id).select().first()
        if row is None:
            raise UserNotFoundError(f"cloud user {user_id} not found")
        return self._to_user(row)

    def list(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[UserStatus] = None,
        cloud_account_id: Optional[int] = None,
        provider: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> List[CloudUser]:
        t = self.read_table
        query = t.id > 0
        if tenant_id:
            query &= t.tenant_id == tenant_id
        if status:
            query &= t.status == status.value
        if cloud_account_id:
            query &= t.cloud_account_id == cloud_account_id
        if provider:
            query &= t.provider == provider
        rows = self.db_read(query).select(orderby=t.id, limitby=(offset, offset + limit))
        return [self._to_user(r) for r in rows]

    def list_by_account(self, cloud_account_id: int) -> List[CloudUser]:
        """All users of an account, including soft-deleted ones."""
        t = self.table
        rows = self.db(t.cloud_account_id == cloud_account_id).select(orderby=t.id)
        return [self._to_user(r) for r in rows]

    def soft_delete(self, user_id: int) -> None:
        self.db(self.table.id == user_id).update(status=UserStatus.DELETED.value)
        self.db.commit()


class AuditLogRepository(BaseRepository):
    """Append-only audit trail of permission changes."""

    table_name = "audit_logs"

    def create(self, log: AuditLog) -> AuditLog:
        now = utcnow()
        log.id = self.table.insert(
            operation=log.operation,
            target_type=log.target_type,
            target_id=log.target_id,
            before_value=log.before,
            after_value=log.after,
            operator=log.operator,
            tenant_id=log.tenant_id,
            created_at=now,
        )
        log.created_at = now
        self.db.commit()
        return log

    def list_for_target(self, target_type: str, target_id: int) -> List[AuditLog]:
        t = self.read_table
        rows = self.db_read((t.target_type == target_type) & (t.target_id == target_id)).select(orderby=t.id)
        return [
            AuditLog(
                id=r.id,
                operation=r.operation,
                target_type=r.target_type,
                target_id=r.target_id,
                tenant_id=r.tenant_id,
                before=r.before_value,
                after=r.after_value,
                operator=r.operator,
                created_at=as_utc(r.created_at),
            )
            for r in rows
        ]
