"""Per-provider error classification.

Providers report throttling, missing resources and denied access in their
own formats. AWS errors arrive as botocore ClientError with a code; other
SDKs are matched on codes and message signatures. Only the throttling
verdict makes a call retryable.
"""

# flake8: noqa: E501


from typing import Dict, FrozenSet, Optional, Tuple

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from cloudsync.shared.errors import (
    CloudError,
    ConnectionTimeoutError,
    InvalidCredentialsError,
    PermissionDeniedError,
    RegionNotSupportedError,
    ResourceNotFoundError,
    ThrottlingError,
)

THROTTLING_CODES: Dict[str, FrozenSet[str]] = {
    "aws": frozenset(
        {
            "Throttling",
            "ThrottlingException",
            "ThrottledException",
            "TooManyRequestsException",
            "RequestLimitExceeded",
            "RequestThrottled",
            "RequestThrottledException",
            "SlowDown",
        }
    ),
    "aliyun": frozenset({"Throttling", "Throttling.User", "Throttling.Api", "QpsLimitExceeded", "FlowControl"}),
    "tencent": frozenset({"RequestLimitExceeded", "ResourceInsufficient.RequestLimitExceeded"}),
    "huawei": frozenset({"IAM.0101", "IAM.0102", "APIGW.0308"}),
    "volcano": frozenset({"RequestLimitExceeded", "AccountFlowLimitExceeded"}),
    "azure": frozenset({"TooManyRequests", "SubscriptionRequestsThrottled"}),
}

THROTTLING_MESSAGES: Tuple[str, ...] = (
    "throttling",
    "rate limit",
    "ratelimit",
    "too many requests",
    "request limit exceeded",
    "qpslimitexceeded",
    "flowcontrol",
)

NOT_FOUND_CODES: Dict[str, FrozenSet[str]] = {
    "aws": frozenset(
        {
            "NoSuchEntity",
            "NoSuchBucket",
            "DBInstanceNotFound",
            "DBInstanceNotFoundFault",
            "CacheClusterNotFound",
            "ReplicationGroupNotFoundFault",
            "InvalidInstanceID.NotFound",
            "InvalidVpcID.NotFound",
            "InvalidAllocationID.NotFound",
            "FileSystemNotFound",
            "ResourceNotFoundException",
            "NotFoundException",
        }
    ),
    "aliyun": frozenset({"EntityNotExist.User", "EntityNotExist.Group", "InvalidInstanceId.NotFound"}),
    "tencent": frozenset({"ResourceNotFound", "ResourceNotFound.UserNotExist"}),
    "huawei": frozenset({"IAM.0004", "IAM.0007"}),
}

PERMISSION_CODES: Dict[str, FrozenSet[str]] = {
    "aws": frozenset({"AccessDenied", "AccessDeniedException", "UnauthorizedOperation", "Forbidden"}),
    "aliyun": frozenset({"Forbidden", "Forbidden.RAM", "NoPermission"}),
    "tencent": frozenset({"UnauthorizedOperation", "AuthFailure.UnauthorizedOperation"}),
    "huawei": frozenset({"IAM.0002", "IAM.0003"}),
}

CREDENTIAL_CODES: Dict[str, FrozenSet[str]] = {
    "aws": frozenset(
        {
            "InvalidClientTokenId",
            "SignatureDoesNotMatch",
            "AuthFailure",
            "InvalidAccessKeyId",
            "UnrecognizedClientException",
            "ExpiredToken",
        }
    ),
    "aliyun": frozenset({"InvalidAccessKeyId.NotFound", "SignatureDoesNotMatch"}),
    "tencent": frozenset({"AuthFailure.SecretIdNotFound", "AuthFailure.SignatureFailure"}),
    "huawei": frozenset({"IAM.0001"}),
}


# Region not enabled for the account or not offered by the service
REGION_CODES: Dict[str, FrozenSet[str]] = {
    "aws": frozenset({"OptInRequired", "InvalidRegion"}),
    "aliyun": frozenset({"InvalidRegionId", "InvalidRegionId.NotFound"}),
    "tencent": frozenset({"UnsupportedRegion"}),
}

def error_code(error: BaseException) -> Optional[str]:
    """Extract the provider error code from an SDK exception, if any."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    for attr in ("code", "error_code", "Code"):
        value = getattr(error, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


def _matches(table: Dict[str, FrozenSet[str]], provider: str, error: BaseException) -> bool:
    code = error_code(error)
    return code is not None and code in table.get(provider, frozenset())


def is_throttling_error(provider: str, error: BaseException) -> bool:
    """Whether ``error`` is the provider rejecting the call for rate reasons."""
    if isinstance(error, ThrottlingError):
        return True
    if isinstance(error, CloudError):
        return False
    if _matches(THROTTLING_CODES, provider, error):
        return True
    if isinstance(error, ClientError):
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if status == 429:
            return True
    message = str(error).lower()
    return any(signature in message for signature in THROTTLING_MESSAGES)


def is_not_found_error(provider: str, error: BaseException) -> bool:
    if isinstance(error, ResourceNotFoundError):
        return True
    if _matches(NOT_FOUND_CODES, provider, error):
        return True
    message = str(error).lower()
    return "not found" in message or "notfound" in message or "does not exist" in message


def is_permission_error(provider: str, error: BaseException) -> bool:
    if isinstance(error, PermissionDeniedError):
        return True
    if _matches(PERMISSION_CODES, provider, error):
        return True
    message = str(error).lower()
    return "access denied" in message or "accessdenied" in message or "forbidden" in message


def translate_error(provider: str, error: BaseException) -> CloudError:
    """Map an SDK exception onto the CloudError taxonomy."""
    if isinstance(error, CloudError):
        return error
    message = f"{provider}: {error}"
    if isinstance(error, (ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError, TimeoutError)):
        return ConnectionTimeoutError(message, provider=provider, cause=error)
    if is_throttling_error(provider, error):
        return ThrottlingError(message, provider=provider, cause=error)
    if _matches(REGION_CODES, provider, error):
        return RegionNotSupportedError(message, provider=provider, cause=error)
    if _matches(CREDENTIAL_CODES, provider, error):
        return InvalidCredentialsError(message, provider=provider, cause=error)
    if is_permission_error(provider, error):
        return PermissionDeniedError(message, provider=provider, cause=error)
    if is_not_found_error(provider, error):
        return ResourceNotFoundError(message, provider=provider, cause=error)
    return CloudError(message, provider=provider, cause=error)
