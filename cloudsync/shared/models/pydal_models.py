"""PyDAL table definitions for CloudSync.

Long lines are unavoidable due to Field() definition syntax and are
suppressed from linting.
"""

# flake8: noqa: E501

import datetime

from pydal import Field
from pydal.validators import IS_IN_SET, IS_INT_IN_RANGE, IS_NOT_EMPTY

from cloudsync.shared.models.domain import (
    AccountStatus,
    SyncTargetType,
    SyncTaskStatus,
    SyncTaskType,
    UserStatus,
)


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def define_all_tables(db, migrate=False):
    """Define all database tables using PyDAL.

    Args:
        db: PyDAL database instance
        migrate: Whether PyDAL may create/alter tables
    """

    # Cloud accounts - owned by the account service, read here
    db.define_table(
        "cloud_accounts",
        Field("name", "string", length=255, notnull=True, requires=IS_NOT_EMPTY()),
        Field("provider", "string", length=32, notnull=True),
        Field("environment", "string", length=32, default="production"),
        Field("access_key_id", "string", length=255),
        Field("access_key_secret", "string", length=512),
        Field("regions", "list:string"),
        Field(
            "status",
            "string",
            length=20,
            default=AccountStatus.ACTIVE.value,
            requires=IS_IN_SET([s.value for s in AccountStatus]),
        ),
        Field("config", "json"),  # enable_auto_sync, sync_interval, supported_*
        Field("tenant_id", "string", length=64, notnull=True),
        Field("last_sync_time", "datetime"),
        Field("asset_count", "integer", default=0),
        Field("created_at", "datetime", default=_utcnow),
        Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
        migrate=migrate,
    )

    # Sync tasks - never deleted, retained for audit
    db.define_table(
        "sync_tasks",
        Field(
            "task_type",
            "string",
            length=32,
            notnull=True,
            requires=IS_IN_SET([t.value for t in SyncTaskType]),
        ),
        Field(
            "target_type",
            "string",
            length=16,
            notnull=True,
            requires=IS_IN_SET([t.value for t in SyncTargetType]),
        ),
        Field("target_id", "bigint", notnull=True),
        Field("cloud_account_id", "bigint", notnull=True),
        Field("provider", "string", length=32, notnull=True),
        Field(
            "status",
            "string",
            length=16,
            default=SyncTaskStatus.PENDING.value,
            requires=IS_IN_SET([s.value for s in SyncTaskStatus]),
        ),
        Field("progress", "integer", default=0, requires=IS_INT_IN_RANGE(0, 101)),
        Field("retry_count", "integer", default=0),
        Field("max_retries", "integer", default=3),
        Field("error_message", "text", default=""),
        Field("params", "json"),
        Field("result", "json"),
        Field("start_time", "datetime"),
        Field("end_time", "datetime"),
        Field("created_at", "datetime", default=_utcnow),
        Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
        migrate=migrate,
    )

    # Asset instances - keyed by (tenant_id, model_uid, asset_id)
    db.define_table(
        "instances",
        Field("tenant_id", "string", length=64, notnull=True),
        Field("model_uid", "string", length=64, notnull=True),
        Field("asset_id", "string", length=255, notnull=True),
        Field("asset_name", "string", length=255),
        Field("account_id", "bigint"),
        Field("region", "string", length=64),  # denormalized from attributes for scoped listing
        Field("attributes", "json"),
        Field("created_at", "datetime", default=_utcnow),
        Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
        migrate=migrate,
    )

    db.define_table(
        "permission_groups",
        Field("name", "string", length=255, notnull=True, requires=IS_NOT_EMPTY()),
        Field("description", "text"),
        Field("policies", "json"),
        Field("cloud_platforms", "list:string"),
        Field("tenant_id", "string", length=64, notnull=True),
        Field("user_count", "integer", default=0),
        Field("created_at", "datetime", default=_utcnow),
        Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
        migrate=migrate,
    )

    db.define_table(
        "cloud_users",
        Field("username", "string", length=255, notnull=True),
        Field("user_type", "string", length=32),
        Field("cloud_account_id", "bigint", notnull=True),
        Field("provider", "string", length=32, notnull=True),
        Field("cloud_user_id", "string", length=255, notnull=True),
        Field("display_name", "string", length=255),
        Field("email", "string", length=255),
        Field("permission_groups", "list:integer"),
        Field("policies", "json"),  # personal policies
        Field("metadata", "json"),
        Field(
            "status",
            "string",
            length=16,
            default=UserStatus.ACTIVE.value,
            requires=IS_IN_SET([s.value for s in UserStatus]),
        ),
        Field("tenant_id", "string", length=64, notnull=True),
        Field("created_at", "datetime", default=_utcnow),
        Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
        migrate=migrate,
    )

    db.define_table(
        "audit_logs",
        Field("operation", "string", length=64, notnull=True),
        Field("target_type", "string", length=32),
        Field("target_id", "bigint"),
        Field("before_value", "json"),
        Field("after_value", "json"),
        Field("operator", "string", length=255, default="system"),
        Field("tenant_id", "string", length=64),
        Field("created_at", "datetime", default=_utcnow),
        migrate=migrate,
    )

    return db
