"""AWS provider adapter."""

from cloudsync.worker.cloud.aws.adapter import AWSAdapter

__all__ = ["AWSAdapter"]
