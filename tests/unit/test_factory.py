"""
Unit tests for the provider registry and the adapter factory cache.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from cloudsync.shared.errors import (
    AccountDisabledError,
    InvalidConfigError,
    UnsupportedProviderError,
)
from cloudsync.shared.models.domain import AccountStatus
from cloudsync.worker.cloud.factory import AdapterCacheKey, AdapterFactory
from cloudsync.worker.cloud.registry import AdapterRegistry, build_default_registry
from tests.fakes import ComputeOnlyAdapter, FakeAdapter, make_account


class TestAdapterRegistry:
    """Test AdapterRegistry."""

    def test_register_and_get(self, registry):
        assert registry.get("aws") is FakeAdapter
        assert registry.is_registered("aws")
        assert not registry.is_registered("azure")

    def test_unknown_provider_raises(self, registry):
        with pytest.raises(UnsupportedProviderError) as exc_info:
            registry.get("azure")

        assert exc_info.value.provider == "azure"

    def test_register_replaces_existing(self, registry):
        registry.register("aws", ComputeOnlyAdapter)

        assert registry.get("aws") is ComputeOnlyAdapter

    def test_unregister_and_providers(self, registry):
        registry.register("aliyun", FakeAdapter)
        assert registry.providers() == ["aliyun", "aws"]

        registry.unregister("aliyun")
        assert registry.providers() == ["aws"]

    def test_default_registry_ships_aws(self):
        assert build_default_registry().is_registered("aws")


class TestAdapterFactory:
    """Test AdapterFactory validation and caching."""

    def test_create_adapter_caches_per_account(self, factory):
        """Test that repeated calls return the same adapter and rate limiter."""
        account = make_account(id=1)

        first = factory.create_adapter(account)
        second = factory.create_adapter(account)

        assert isinstance(first, FakeAdapter)
        assert first is second
        assert first.rate_limiter is second.rate_limiter
        assert factory.cached_keys() == [AdapterCacheKey("aws", 1)]

    def test_accounts_get_separate_adapters(self, factory):
        first = factory.create_adapter(make_account(id=1))
        second = factory.create_adapter(make_account(id=2))

        assert first is not second
        assert first.rate_limiter is not second.rate_limiter

    @pytest.mark.parametrize(
        "overrides", [{"access_key_id": ""}, {"access_key_secret": ""}]
    )
    def test_empty_credentials_rejected(self, factory, overrides):
        with pytest.raises(InvalidConfigError):
            factory.create_adapter(make_account(id=1, **overrides))

        assert factory.cached_keys() == []

    def test_missing_account_rejected(self, factory):
        with pytest.raises(InvalidConfigError):
            factory.create_adapter(None)

    @pytest.mark.parametrize("status", [AccountStatus.DISABLED, AccountStatus.ERROR])
    def test_inactive_account_rejected(self, factory, status):
        with pytest.raises(AccountDisabledError):
            factory.create_adapter(make_account(id=1, status=status))

    def test_unsupported_provider(self, factory):
        with pytest.raises(UnsupportedProviderError):
            factory.create_adapter(make_account(id=1, provider="azure"))

    def test_clear_account_cache_forces_rebuild(self, factory):
        """Test that clearing one entry rebuilds only that adapter."""
        account = make_account(id=1)
        other = make_account(id=2)
        first = factory.create_adapter(account)
        kept = factory.create_adapter(other)

        factory.clear_account_cache("aws", 1)

        assert factory.create_adapter(account) is not first
        assert factory.create_adapter(other) is kept

    def test_clear_cache_drops_everything(self, factory):
        factory.create_adapter(make_account(id=1))
        factory.create_adapter(make_account(id=2))

        factory.clear_cache()

        assert factory.cached_keys() == []

    def test_concurrent_creation_builds_one_adapter(self):
        """Test that racing callers share a single adapter."""
        built = []

        def creator(account):
            adapter = FakeAdapter(account)
            built.append(adapter)
            return adapter

        registry = AdapterRegistry()
        registry.register("aws", creator)
        factory = AdapterFactory(registry)
        account = make_account(id=1)

        with ThreadPoolExecutor(max_workers=8) as pool:
            adapters = list(pool.map(lambda _: factory.create_adapter(account), range(16)))

        assert len(built) == 1
        assert all(a is adapters[0] for a in adapters)
