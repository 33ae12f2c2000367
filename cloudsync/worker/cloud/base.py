"""Uniform capability contract implemented by every cloud provider.

A provider adapter exposes one capability object per resource kind it
supports. Callers ask ``supports_capability(kind)`` (or use
``get_capability``) before touching a kind, so an unsupported kind is a
typed outcome rather than a missing attribute. Operations a capability does
not implement raise CapabilityNotImplementedError.

All outbound SDK calls go through ``CloudAdapter.call``, which waits on the
adapter's rate limiter and retries throttled calls with exponential backoff.
"""

# flake8: noqa: E501


import abc
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from cloudsync.shared.errors import (
    CapabilityNotImplementedError,
    CloudError,
    UnsupportedCapabilityError,
)
from cloudsync.shared.models.domain import CloudAccount, CloudUser, PermissionPolicy
from cloudsync.worker.cloud.classifiers import is_throttling_error, translate_error
from cloudsync.worker.cloud.types import CloudGroup, PolicySyncResult, ResourcePage
from cloudsync.worker.config.settings import settings
from cloudsync.worker.utils.logger import get_logger
from cloudsync.worker.utils.rate_limiter import RateLimiter
from cloudsync.worker.utils.retry import with_backoff

logger = get_logger(__name__)

T = TypeVar("T")


class ResourceKind(str, Enum):
    """Resource kinds a provider may support. Values double as asset model suffixes."""

    COMPUTE = "ecs"
    RELATIONAL_DB = "rds"
    CACHE = "redis"
    DOCUMENT_DB = "mongodb"
    NETWORK = "vpc"
    PUBLIC_IP = "eip"
    FILE_STORAGE = "nas"
    OBJECT_STORAGE = "oss"
    MESSAGE_BROKER = "kafka"
    SEARCH = "elasticsearch"
    IDENTITY = "iam"


@dataclass
class PolicyChangePlan:
    """Policies to attach and detach so an identity matches its target set."""

    to_attach: List[PermissionPolicy] = field(default_factory=list)
    to_detach: List[str] = field(default_factory=list)
    unchanged: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.to_attach and not self.to_detach


def plan_policy_changes(current_ids: Iterable[str], target: List[PermissionPolicy]) -> PolicyChangePlan:
    """Compute the symmetric difference between current and target policies.

    Args:
        current_ids: Policy ids currently attached on the provider side
        target: Desired policies (already filtered to one provider)

    Returns:
        PolicyChangePlan with attach and detach lists
    """
    current = set(current_ids)
    desired: Dict[str, PermissionPolicy] = {}
    for policy in target:
        desired.setdefault(policy.policy_id, policy)

    to_attach = [p for pid, p in desired.items() if pid not in current]
    to_detach = sorted(current - set(desired))
    return PolicyChangePlan(
        to_attach=to_attach,
        to_detach=to_detach,
        unchanged=len(current & set(desired)),
    )


class ResourceAdapter(abc.ABC):
    """Capability for one resource kind of one provider.

    Subclasses implement ``list_page`` and optionally ``get_instance``; the
    remaining operations are derived from those two.
    """

    kind: ResourceKind

    def __init__(self, adapter: "CloudAdapter"):
        self.adapter = adapter

    @property
    def provider(self) -> str:
        return self.adapter.provider

    def call(self, operation: Callable[[], T]) -> T:
        return self.adapter.call(operation)

    @abc.abstractmethod
    def list_page(
        self,
        region: str,
        filters: Optional[Dict[str, Any]] = None,
        next_token: Optional[str] = None,
    ) -> ResourcePage:
        """Fetch one page of resources in a region."""

    def list_instances(self, region: str) -> List[Any]:
        return self.list_instances_with_filter(region, None)

    def list_instances_with_filter(self, region: str, filters: Optional[Dict[str, Any]]) -> List[Any]:
        """Collect every page of a listing."""
        items: List[Any] = []
        token: Optional[str] = None
        while True:
            page = self.list_page(region, filters=filters, next_token=token)
            items.extend(page.items)
            if not page.next_token:
                break
            if page.next_token == token:
                logger.warning(
                    "provider returned the same page token twice, stopping",
                    provider=self.provider,
                    kind=self.kind.value,
                    region=region,
                )
                break
            token = page.next_token
        return items

    def get_instance(self, region: str, instance_id: str) -> Any:
        raise CapabilityNotImplementedError(
            f"{self.kind.value}.get_instance is not implemented", provider=self.provider
        )

    def list_instances_by_ids(self, region: str, instance_ids: List[str]) -> List[Any]:
        """Fetch several resources; ids that fail to load are logged and skipped."""
        found = []
        for instance_id in instance_ids:
            try:
                found.append(self.get_instance(region, instance_id))
            except CapabilityNotImplementedError:
                raise
            except CloudError as e:
                logger.warning(
                    "failed to load resource, skipping",
                    provider=self.provider,
                    kind=self.kind.value,
                    region=region,
                    instance_id=instance_id,
                    error=str(e),
                )
        return found

    def get_instance_status(self, region: str, instance_id: str) -> str:
        return self.get_instance(region, instance_id).status


class IdentityAdapter(abc.ABC):
    """Identity capability: users, groups and policies.

    ``update_user_permissions`` and ``update_group_policies`` are built on
    the attach/detach primitives, so a provider only needs those.
    """

    kind = ResourceKind.IDENTITY

    def __init__(self, adapter: "CloudAdapter"):
        self.adapter = adapter

    @property
    def provider(self) -> str:
        return self.adapter.provider

    def call(self, operation: Callable[[], T]) -> T:
        return self.adapter.call(operation)

    def _not_implemented(self, operation: str):
        return CapabilityNotImplementedError(
            f"iam.{operation} is not implemented", provider=self.provider
        )

    @abc.abstractmethod
    def validate_credentials(self) -> Dict[str, Any]:
        """Check the account credentials; returns caller identity details."""

    def list_users(self) -> List[CloudUser]:
        raise self._not_implemented("list_users")

    def get_user(self, user_id: str) -> CloudUser:
        raise self._not_implemented("get_user")

    def create_user(self, username: str, display_name: str = "", email: str = "") -> CloudUser:
        raise self._not_implemented("create_user")

    def delete_user(self, user_id: str) -> None:
        raise self._not_implemented("delete_user")

    def list_policies(self, policy_type: Optional[str] = None) -> List[PermissionPolicy]:
        raise self._not_implemented("list_policies")

    def get_policy(self, policy_id: str) -> PermissionPolicy:
        raise self._not_implemented("get_policy")

    def get_user_policies(self, user_id: str) -> List[PermissionPolicy]:
        raise self._not_implemented("get_user_policies")

    def attach_user_policy(self, user_id: str, policy: PermissionPolicy) -> None:
        raise self._not_implemented("attach_user_policy")

    def detach_user_policy(self, user_id: str, policy_id: str) -> None:
        raise self._not_implemented("detach_user_policy")

    def update_user_permissions(self, user_id: str, policies: List[PermissionPolicy]) -> PolicySyncResult:
        """Make the user's attached policies equal ``policies``.

        Args:
            user_id: Provider user id (user name for AWS)
            policies: Target policies for this provider

        Returns:
            PolicySyncResult listing what changed
        """
        current = [p.policy_id for p in self.get_user_policies(user_id)]
        plan = plan_policy_changes(current, policies)
        result = PolicySyncResult(target_id=user_id, unchanged=plan.unchanged)

        for policy_id in plan.to_detach:
            self.detach_user_policy(user_id, policy_id)
            result.detached.append(policy_id)
        for policy in plan.to_attach:
            self.attach_user_policy(user_id, policy)
            result.attached.append(policy.policy_id)

        logger.info(
            "user permissions updated",
            provider=self.provider,
            user_id=user_id,
            attached=len(result.attached),
            detached=len(result.detached),
        )
        return result

    def list_groups(self) -> List[CloudGroup]:
        raise self._not_implemented("list_groups")

    def get_group(self, group_id: str) -> CloudGroup:
        raise self._not_implemented("get_group")

    def create_group(self, group_name: str, description: str = "") -> CloudGroup:
        raise self._not_implemented("create_group")

    def delete_group(self, group_id: str) -> None:
        raise self._not_implemented("delete_group")

    def list_group_users(self, group_id: str) -> List[str]:
        raise self._not_implemented("list_group_users")

    def add_user_to_group(self, group_id: str, user_id: str) -> None:
        raise self._not_implemented("add_user_to_group")

    def remove_user_from_group(self, group_id: str, user_id: str) -> None:
        raise self._not_implemented("remove_user_from_group")

    def get_group_policies(self, group_id: str) -> List[PermissionPolicy]:
        raise self._not_implemented("get_group_policies")

    def attach_group_policy(self, group_id: str, policy: PermissionPolicy) -> None:
        raise self._not_implemented("attach_group_policy")

    def detach_group_policy(self, group_id: str, policy_id: str) -> None:
        raise self._not_implemented("detach_group_policy")

    def update_group_policies(self, group_id: str, policies: List[PermissionPolicy]) -> PolicySyncResult:
        """Make the group's attached policies equal ``policies``."""
        current = [p.policy_id for p in self.get_group_policies(group_id)]
        plan = plan_policy_changes(current, policies)
        result = PolicySyncResult(target_id=group_id, unchanged=plan.unchanged)

        for policy_id in plan.to_detach:
            self.detach_group_policy(group_id, policy_id)
            result.detached.append(policy_id)
        for policy in plan.to_attach:
            self.attach_group_policy(group_id, policy)
            result.attached.append(policy.policy_id)
        return result


class CloudAdapter(abc.ABC):
    """One provider account's entry point to its capabilities.

    Instances are created by AdapterFactory and cached per
    (provider, account id). The rate limiter belongs to this instance only.
    """

    provider: str = ""

    def __init__(
        self,
        account: CloudAccount,
        rate_limiter: Optional[RateLimiter] = None,
        max_attempts: Optional[int] = None,
    ):
        """Initialize the adapter.

        Args:
            account: Cloud account with credentials
            rate_limiter: Token bucket (defaults to adapter_rate_limit_qps)
            max_attempts: Attempts per throttled call (defaults to adapter_max_attempts)
        """
        self.account = account
        self.rate_limiter = rate_limiter or RateLimiter(settings.adapter_rate_limit_qps)
        self.max_attempts = max_attempts or settings.adapter_max_attempts
        self._capabilities: Dict[ResourceKind, Any] = self._build_capabilities()

    @abc.abstractmethod
    def _build_capabilities(self) -> Dict[ResourceKind, Any]:
        """Return the capability objects this provider offers, keyed by kind."""

    def supported_capabilities(self) -> List[ResourceKind]:
        return list(self._capabilities)

    def supports_capability(self, kind: ResourceKind) -> bool:
        return kind in self._capabilities

    def get_capability(self, kind: ResourceKind) -> Optional[Any]:
        """Capability for ``kind`` or None if the provider does not offer it."""
        return self._capabilities.get(kind)

    def capability(self, kind: ResourceKind) -> Any:
        """Capability for ``kind``.

        Raises:
            UnsupportedCapabilityError: If the provider does not offer it
        """
        cap = self._capabilities.get(kind)
        if cap is None:
            raise UnsupportedCapabilityError(
                f"{self.provider} does not support {kind.value}", provider=self.provider
            )
        return cap

    @property
    def identity(self) -> IdentityAdapter:
        return self.capability(ResourceKind.IDENTITY)

    def validate_credentials(self) -> Dict[str, Any]:
        return self.identity.validate_credentials()

    def list_regions(self) -> List[str]:
        """Regions available to this account."""
        raise CapabilityNotImplementedError(
            f"{self.provider}.list_regions is not implemented", provider=self.provider
        )

    def is_retryable(self, error: Exception) -> bool:
        return is_throttling_error(self.provider, error)

    def call(self, operation: Callable[[], T]) -> T:
        """Run one SDK call under the rate limiter and the backoff helper.

        SDK exceptions that survive the retries are translated into the
        CloudError taxonomy.
        """

        def _limited():
            self.rate_limiter.wait()
            return operation()

        try:
            return with_backoff(self.max_attempts, _limited, self.is_retryable)
        except CloudError:
            raise
        except Exception as e:
            raise translate_error(self.provider, e) from e
