"""Domain objects shared by the sync engine and its repositories.

Repositories translate between these dataclasses and PyDAL rows; the engine
never touches rows directly.
"""

# flake8: noqa: E501


from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Provider(str, Enum):
    """Supported cloud providers."""

    ALIYUN = "aliyun"
    AWS = "aws"
    AZURE = "azure"
    HUAWEI = "huawei"
    TENCENT = "tencent"
    VOLCANO = "volcano"


VALID_PROVIDERS = {p.value for p in Provider}


class SyncTaskType(str, Enum):
    """Kind of work a sync task performs."""

    USER_SYNC = "user_sync"
    PERMISSION_SYNC = "permission_sync"
    GROUP_SYNC = "group_sync"
    BATCH_USER_SYNC = "batch_user_sync"


class SyncTargetType(str, Enum):
    """Kind of object a sync task targets."""

    USER = "user"
    GROUP = "group"
    ACCOUNT = "account"


class SyncTaskStatus(str, Enum):
    """Lifecycle state of a sync task."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"


class AccountStatus(str, Enum):
    """Status of a cloud account."""

    ACTIVE = "active"
    DISABLED = "disabled"
    ERROR = "error"
    TESTING = "testing"


class UserStatus(str, Enum):
    """Status of a cloud user. DELETED marks users gone from the provider."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


class UserType(str, Enum):
    """Kind of provider identity."""

    API_KEY = "api_key"
    ACCESS_KEY = "access_key"
    RAM_USER = "ram_user"
    IAM_USER = "iam_user"


class PolicyType(str, Enum):
    """Whether a policy is provider-managed or customer-defined."""

    SYSTEM = "system"
    CUSTOM = "custom"


@dataclass
class SyncTask:
    """A persisted, retryable unit of synchronization work.

    Attributes:
        task_type: What the task does
        target_type: Kind of object targeted
        target_id: Local id of the target (user, group or account)
        cloud_account_id: Account whose adapter performs the work
        provider: Provider name
        status: Lifecycle state
        progress: Completion percentage (0-100)
        retry_count: Retries consumed so far
        max_retries: Retry budget
        error_message: Text of the last failure
        params: Optional routine parameters (regions, asset_types)
        result: Summary written by batch routines
    """

    task_type: SyncTaskType
    target_type: SyncTargetType
    target_id: int
    cloud_account_id: int
    provider: str
    id: Optional[int] = None
    status: SyncTaskStatus = SyncTaskStatus.PENDING
    progress: int = 0
    retry_count: int = 0
    max_retries: int = 3
    error_message: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] = field(default_factory=dict)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def can_retry(self) -> bool:
        """Failed tasks with budget left may be retried."""
        return self.status == SyncTaskStatus.FAILED and self.retry_count < self.max_retries

    def is_terminal(self) -> bool:
        if self.status == SyncTaskStatus.SUCCESS:
            return True
        return self.status == SyncTaskStatus.FAILED and not self.can_retry()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["task_type"] = self.task_type.value
        data["target_type"] = self.target_type.value
        data["status"] = self.status.value
        for key in ("start_time", "end_time", "created_at", "updated_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class SyncTaskFilter:
    """Filter for listing sync tasks. Unset fields match everything."""

    task_type: Optional[SyncTaskType] = None
    status: Optional[SyncTaskStatus] = None
    target_type: Optional[SyncTargetType] = None
    target_id: Optional[int] = None
    cloud_account_id: Optional[int] = None
    provider: Optional[str] = None
    offset: int = 0
    limit: int = 20


@dataclass
class Instance:
    """Locally stored asset record, unique per (tenant_id, model_uid, asset_id)."""

    tenant_id: str
    model_uid: str
    asset_id: str
    asset_name: str
    account_id: int
    attributes: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def region(self) -> str:
        return self.attributes.get("region", "")


@dataclass
class AccountConfig:
    """Per-account sync configuration."""

    enable_auto_sync: bool = False
    sync_interval: int = 0  # minutes
    supported_regions: List[str] = field(default_factory=list)
    supported_asset_types: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AccountConfig":
        data = data or {}
        return cls(
            enable_auto_sync=bool(data.get("enable_auto_sync", False)),
            sync_interval=int(data.get("sync_interval") or 0),
            supported_regions=list(data.get("supported_regions") or []),
            supported_asset_types=list(data.get("supported_asset_types") or []),
        )


@dataclass
class CloudAccount:
    """A provider account with credentials. Read-only to the sync engine."""

    id: int
    name: str
    provider: str
    access_key_id: str
    access_key_secret: str
    tenant_id: str
    environment: str = "production"
    regions: List[str] = field(default_factory=list)
    status: AccountStatus = AccountStatus.ACTIVE
    config: AccountConfig = field(default_factory=AccountConfig)
    last_sync_time: Optional[datetime] = None
    asset_count: int = 0

    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE


@dataclass
class PermissionPolicy:
    """A provider policy, unique per (policy_id, provider)."""

    policy_id: str
    policy_name: str
    provider: str
    policy_document: str = ""
    policy_type: str = PolicyType.SYSTEM.value

    @property
    def key(self):
        return (self.policy_id, self.provider)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PermissionPolicy":
        return cls(
            policy_id=data.get("policy_id", ""),
            policy_name=data.get("policy_name", ""),
            provider=data.get("provider", ""),
            policy_document=data.get("policy_document") or "",
            policy_type=data.get("policy_type") or PolicyType.SYSTEM.value,
        )


@dataclass
class PermissionGroup:
    """A named set of policies targeting one or more cloud platforms."""

    name: str
    tenant_id: str
    id: Optional[int] = None
    description: str = ""
    policies: List[PermissionPolicy] = field(default_factory=list)
    cloud_platforms: List[str] = field(default_factory=list)
    user_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def has_policy(self, policy_id: str, provider: str) -> bool:
        return any(p.policy_id == policy_id and p.provider == provider for p in self.policies)

    def policies_for(self, provider: str) -> List[PermissionPolicy]:
        return [p for p in self.policies if p.provider == provider]


@dataclass
class UserMetadata:
    """Provider-reported details of a cloud user."""

    last_login_time: Optional[datetime] = None
    last_sync_time: Optional[datetime] = None
    access_key_count: int = 0
    mfa_enabled: bool = False
    password_last_set: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("last_login_time", "last_sync_time", "password_last_set"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserMetadata":
        data = data or {}

        def _dt(value):
            if value and isinstance(value, str):
                return datetime.fromisoformat(value)
            return value or None

        return cls(
            last_login_time=_dt(data.get("last_login_time")),
            last_sync_time=_dt(data.get("last_sync_time")),
            access_key_count=int(data.get("access_key_count") or 0),
            mfa_enabled=bool(data.get("mfa_enabled", False)),
            password_last_set=_dt(data.get("password_last_set")),
            tags=dict(data.get("tags") or {}),
        )


@dataclass
class CloudUser:
    """A provider identity, unique per (tenant, provider, account, cloud_user_id)."""

    username: str
    cloud_user_id: str
    provider: str
    cloud_account_id: int
    tenant_id: str
    id: Optional[int] = None
    user_type: str = UserType.IAM_USER.value
    display_name: str = ""
    email: str = ""
    permission_groups: List[int] = field(default_factory=list)
    policies: List[PermissionPolicy] = field(default_factory=list)
    metadata: UserMetadata = field(default_factory=UserMetadata)
    status: UserStatus = UserStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def in_group(self, group_id: int) -> bool:
        return group_id in self.permission_groups


@dataclass
class AuditLog:
    """Before/after record of a permission change."""

    operation: str
    target_type: str
    target_id: int
    tenant_id: str
    before: Any = None
    after: Any = None
    operator: str = "system"
    id: Optional[int] = None
    created_at: Optional[datetime] = None
