"""Provider registry: maps a provider name to an adapter constructor.

The registry is an explicit object handed to AdapterFactory. It is filled
at startup; registration after that is still safe because every access
takes the lock.
"""

# flake8: noqa: E501


import threading
from typing import Callable, Dict, List

from cloudsync.shared.errors import UnsupportedProviderError
from cloudsync.shared.models.domain import CloudAccount
from cloudsync.worker.cloud.base import CloudAdapter
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)

AdapterCreator = Callable[[CloudAccount], CloudAdapter]


class AdapterRegistry:
    """Provider name -> adapter constructor."""

    def __init__(self):
        self._creators: Dict[str, AdapterCreator] = {}
        self._lock = threading.Lock()

    def register(self, provider: str, creator: AdapterCreator) -> None:
        with self._lock:
            if provider in self._creators:
                logger.warning("replacing registered adapter", provider=provider)
            self._creators[provider] = creator
        logger.debug("adapter registered", provider=provider)

    def unregister(self, provider: str) -> None:
        with self._lock:
            self._creators.pop(provider, None)

    def get(self, provider: str) -> AdapterCreator:
        """Constructor for ``provider``.

        Raises:
            UnsupportedProviderError: If nothing is registered for it
        """
        with self._lock:
            creator = self._creators.get(provider)
        if creator is None:
            raise UnsupportedProviderError(f"unsupported cloud provider: {provider}", provider=provider)
        return creator

    def is_registered(self, provider: str) -> bool:
        with self._lock:
            return provider in self._creators

    def providers(self) -> List[str]:
        with self._lock:
            return sorted(self._creators)


def build_default_registry() -> AdapterRegistry:
    """Registry with every provider adapter shipped in this package."""
    from cloudsync.worker.cloud.aws.adapter import AWSAdapter

    registry = AdapterRegistry()
    registry.register("aws", AWSAdapter)
    return registry
