"""Cloud provider capability contracts, registry and adapter factory."""

# flake8: noqa: E501


from cloudsync.worker.cloud.base import (
    CloudAdapter,
    IdentityAdapter,
    PolicyChangePlan,
    ResourceAdapter,
    ResourceKind,
    plan_policy_changes,
)
from cloudsync.worker.cloud.factory import AdapterCacheKey, AdapterFactory
from cloudsync.worker.cloud.registry import AdapterRegistry, build_default_registry

__all__ = [
    "AdapterCacheKey",
    "AdapterFactory",
    "AdapterRegistry",
    "CloudAdapter",
    "IdentityAdapter",
    "PolicyChangePlan",
    "ResourceAdapter",
    "ResourceKind",
    "build_default_registry",
    "plan_policy_changes",
]
