"""Error taxonomy for CloudSync.

Two families share one root. Sync-level errors describe problems with
requests and task state; cloud errors are raised by provider adapters and
carry the provider they came from. Only ThrottlingError is ever retried
automatically.
"""

# flake8: noqa: E501


from typing import List, Optional


class CloudSyncError(Exception):
    """Base class for all CloudSync errors."""


# ==========================================
# Sync-level errors
# ==========================================


class ValidationError(CloudSyncError):
    """A request is missing required fields or carries invalid values."""


class NotFoundError(CloudSyncError):
    """A referenced record does not exist."""


class SyncTaskNotFoundError(NotFoundError):
    """Sync task does not exist."""


class AccountNotFoundError(NotFoundError):
    """Cloud account does not exist."""


class UserNotFoundError(NotFoundError):
    """Cloud user does not exist."""


class PermissionGroupNotFoundError(NotFoundError):
    """Permission group does not exist."""


class AlreadyRunningError(CloudSyncError):
    """The task is already executing; the caller may try again later."""


class InvalidTaskStateError(CloudSyncError):
    """The task is not pending, so it cannot start; failed tasks go through retry first."""


class MaxRetriesExceededError(CloudSyncError):
    """The task cannot be retried (budget exhausted or not in failed state)."""


class QueueFullError(CloudSyncError):
    """The task queue has no free slot."""


class QueueClosedError(CloudSyncError):
    """The task queue has been stopped."""


class PartialFailure(CloudSyncError):
    """A batch step finished with per-item errors.

    Never raised across the executor boundary; it is the summary recorded
    in a task result.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None, succeeded: int = 0):
        super().__init__(message)
        self.errors = errors or []
        self.succeeded = succeeded

    def to_dict(self) -> dict:
        return {
            "message": str(self),
            "succeeded": self.succeeded,
            "failed": len(self.errors),
            "errors": self.errors,
        }


# ==========================================
# Cloud adapter errors
# ==========================================


class CloudError(CloudSyncError):
    """Error raised by a cloud provider adapter.

    Attributes:
        provider: Provider the error originated from (may be None)
        cause: Underlying SDK exception, if any
    """

    def __init__(self, message: str, provider: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.provider = provider
        self.cause = cause


class UnsupportedProviderError(CloudError):
    """No adapter is registered for the provider."""


class CredentialError(CloudError):
    """Credentials were rejected by the provider."""


class InvalidCredentialsError(CredentialError):
    """Access key or secret is wrong."""


class AccountDisabledError(CloudError):
    """The cloud account is not active."""


class AccountExpiredError(CloudError):
    """The cloud account has expired."""


class InvalidConfigError(CloudError):
    """Account configuration is incomplete (e.g. empty credentials)."""


class ConnectionTimeoutError(CloudError):
    """The provider did not answer before the deadline."""


class PermissionDeniedError(CloudError):
    """The credentials lack permission for the operation."""


class RegionNotSupportedError(CloudError):
    """The provider does not serve the requested region."""


class ResourceNotFoundError(CloudError):
    """The provider reports the resource does not exist."""


class ThrottlingError(CloudError):
    """The provider rejected the call because of rate limiting."""


class CapabilityNotImplementedError(CloudError):
    """The provider does not implement this operation."""


class UnsupportedCapabilityError(CloudError):
    """The provider does not offer this resource kind at all."""
