"""AWS adapter: boto3 session per account, one capability per service."""

# flake8: noqa: E501


import threading
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.config import Config

from cloudsync.shared.models.domain import CloudAccount
from cloudsync.worker.cloud.base import CloudAdapter, ResourceKind
from cloudsync.worker.utils.logger import get_logger
from cloudsync.worker.utils.rate_limiter import RateLimiter

logger = get_logger(__name__)

DEFAULT_REGION = "us-east-1"

# Retries are handled by the backoff helper, not botocore
BOTO_CONFIG = Config(
    retries={"max_attempts": 1, "mode": "standard"},
    connect_timeout=10,
    read_timeout=30,
)


def tags_to_dict(tags: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    """Convert AWS ``[{"Key": k, "Value": v}]`` tags into a dict."""
    if not tags:
        return {}
    return {tag.get("Key", ""): tag.get("Value", "") for tag in tags}


def name_from_tags(tags: Optional[List[Dict[str, str]]], default: str = "") -> str:
    return tags_to_dict(tags).get("Name", default)


class AWSAdapter(CloudAdapter):
    """AWS implementation of every resource kind plus IAM.

    Uses static credentials from the cloud account. Clients are created
    lazily and cached per (service, region).
    """

    provider = "aws"

    def __init__(
        self,
        account: CloudAccount,
        rate_limiter: Optional[RateLimiter] = None,
        max_attempts: Optional[int] = None,
    ):
        self.default_region = (account.regions or [DEFAULT_REGION])[0]
        self.session = boto3.Session(
            aws_access_key_id=account.access_key_id,
            aws_secret_access_key=account.access_key_secret,
            region_name=self.default_region,
        )
        self._clients: Dict[Tuple[str, str], Any] = {}
        self._clients_lock = threading.Lock()
        super().__init__(account, rate_limiter=rate_limiter, max_attempts=max_attempts)

    def _build_capabilities(self) -> Dict[ResourceKind, Any]:
        from cloudsync.worker.cloud.aws.compute import EC2Compute
        from cloudsync.worker.cloud.aws.database import (
            DocumentDBCapability,
            ElastiCacheRedis,
            RDSDatabase,
        )
        from cloudsync.worker.cloud.aws.iam import AWSIdentity
        from cloudsync.worker.cloud.aws.middleware import MSKKafka, OpenSearchClusters
        from cloudsync.worker.cloud.aws.network import ElasticIPs, VPCNetwork
        from cloudsync.worker.cloud.aws.storage import EFSFileSystems, S3Buckets

        capabilities = [
            EC2Compute(self),
            RDSDatabase(self),
            ElastiCacheRedis(self),
            DocumentDBCapability(self),
            VPCNetwork(self),
            ElasticIPs(self),
            EFSFileSystems(self),
            S3Buckets(self),
            MSKKafka(self),
            OpenSearchClusters(self),
            AWSIdentity(self),
        ]
        return {cap.kind: cap for cap in capabilities}

    def client(self, service: str, region: Optional[str] = None):
        """Cached boto3 client for a service in a region."""
        key = (service, region or self.default_region)
        with self._clients_lock:
            client = self._clients.get(key)
            if client is None:
                client = self.session.client(service, region_name=key[1], config=BOTO_CONFIG)
                self._clients[key] = client
        return client

    def list_regions(self) -> List[str]:
        """Regions enabled for the account (EC2 DescribeRegions)."""
        ec2 = self.client("ec2")
        response = self.call(lambda: ec2.describe_regions(AllRegions=False))
        return sorted(r["RegionName"] for r in response.get("Regions", []))
