"""Adapter factory with a per-account cache."""

# flake8: noqa: E501


import threading
from typing import Dict, NamedTuple, Optional

from cloudsync.shared.errors import AccountDisabledError, InvalidConfigError
from cloudsync.shared.models.domain import CloudAccount
from cloudsync.worker.cloud.base import CloudAdapter
from cloudsync.worker.cloud.registry import AdapterRegistry
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


class AdapterCacheKey(NamedTuple):
    """Cache key: one adapter per provider account."""

    provider: str
    account_id: int


class AdapterFactory:
    """Resolves cloud accounts to live adapters.

    Adapters are cached per (provider, account id) so each account keeps a
    single rate limiter. The cache is safe for concurrent use; call
    ``clear_account_cache`` after rotating an account's credentials.
    """

    def __init__(self, registry: AdapterRegistry):
        """Initialize the factory.

        Args:
            registry: Provider registry populated at startup
        """
        self.registry = registry
        self._cache: Dict[AdapterCacheKey, CloudAdapter] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _validate(account: Optional[CloudAccount]) -> None:
        if account is None:
            raise InvalidConfigError("cloud account is required")
        if not account.access_key_id or not account.access_key_secret:
            raise InvalidConfigError(
                f"cloud account {account.id} has empty credentials", provider=account.provider
            )
        if not account.is_active():
            raise AccountDisabledError(
                f"cloud account {account.id} is {account.status.value}", provider=account.provider
            )

    def create_adapter(self, account: CloudAccount) -> CloudAdapter:
        """Return the cached adapter for ``account``, building it on first use.

        Raises:
            InvalidConfigError: If the account or its credentials are missing
            AccountDisabledError: If the account is not active
            UnsupportedProviderError: If no adapter is registered for the provider
        """
        self._validate(account)
        key = AdapterCacheKey(account.provider, account.id)

        with self._lock:
            adapter = self._cache.get(key)
            if adapter is not None:
                return adapter

            creator = self.registry.get(account.provider)
            adapter = creator(account)
            self._cache[key] = adapter

        logger.info("adapter created", provider=account.provider, account_id=account.id)
        return adapter

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.info("adapter cache cleared")

    def clear_account_cache(self, provider: str, account_id: int) -> None:
        with self._lock:
            self._cache.pop(AdapterCacheKey(provider, account_id), None)
        logger.info("adapter cache entry cleared", provider=provider, account_id=account_id)

    def cached_keys(self):
        with self._lock:
            return list(self._cache)
