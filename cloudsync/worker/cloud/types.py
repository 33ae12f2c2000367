"""Typed records returned by provider capabilities.

Each provider maps its SDK responses into these dataclasses; the sync layer
converts them into asset instances.
"""

# flake8: noqa: E501


from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ResourcePage(Generic[T]):
    """One page of a provider listing. ``next_token`` is None on the last page."""

    items: List[T] = field(default_factory=list)
    next_token: Optional[str] = None


@dataclass
class ComputeInstance:
    """Virtual machine."""

    instance_id: str
    instance_name: str = ""
    status: str = ""
    region: str = ""
    zone: str = ""
    instance_type: str = ""
    cpu: int = 0
    memory_mb: int = 0
    os_type: str = ""
    os_name: str = ""
    image_id: str = ""
    vpc_id: str = ""
    subnet_id: str = ""
    private_ip: str = ""
    public_ip: str = ""
    security_group_ids: List[str] = field(default_factory=list)
    charge_type: str = ""
    creation_time: Optional[datetime] = None
    expired_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class DatabaseInstance:
    """Managed relational database."""

    instance_id: str
    instance_name: str = ""
    status: str = ""
    region: str = ""
    zone: str = ""
    engine: str = ""
    engine_version: str = ""
    instance_class: str = ""
    storage_gb: int = 0
    storage_type: str = ""
    multi_az: bool = False
    vpc_id: str = ""
    subnet_group: str = ""
    endpoint: str = ""
    port: int = 0
    charge_type: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class CacheInstance:
    """Managed key-value cache (Redis compatible)."""

    instance_id: str
    instance_name: str = ""
    status: str = ""
    region: str = ""
    zone: str = ""
    engine_version: str = ""
    node_type: str = ""
    node_count: int = 0
    capacity_mb: int = 0
    architecture: str = ""
    vpc_id: str = ""
    subnet_id: str = ""
    endpoint: str = ""
    port: int = 0
    charge_type: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class DocumentDBInstance:
    """Managed document database (MongoDB compatible)."""

    instance_id: str
    instance_name: str = ""
    status: str = ""
    region: str = ""
    zone: str = ""
    engine_version: str = ""
    instance_class: str = ""
    node_count: int = 0
    storage_gb: int = 0
    vpc_id: str = ""
    subnet_group: str = ""
    endpoint: str = ""
    port: int = 0
    charge_type: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class VPC:
    """Virtual private network."""

    vpc_id: str
    vpc_name: str = ""
    status: str = ""
    region: str = ""
    cidr_block: str = ""
    ipv6_cidr_block: str = ""
    is_default: bool = False
    subnet_count: int = 0
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class EIP:
    """Public (elastic) IP address."""

    allocation_id: str
    ip_address: str = ""
    name: str = ""
    status: str = ""
    region: str = ""
    bandwidth: int = 0
    instance_id: str = ""
    instance_type: str = ""
    network_interface_id: str = ""
    private_ip: str = ""
    charge_type: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class FileSystem:
    """Network file storage."""

    file_system_id: str
    name: str = ""
    status: str = ""
    region: str = ""
    zone: str = ""
    protocol_type: str = ""
    storage_type: str = ""
    capacity_bytes: int = 0
    used_bytes: int = 0
    encrypted: bool = False
    mount_target_count: int = 0
    vpc_id: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class Bucket:
    """Object storage bucket."""

    bucket_name: str
    region: str = ""
    storage_class: str = ""
    acl: str = ""
    versioning: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class BrokerInstance:
    """Managed message broker (Kafka compatible)."""

    instance_id: str
    instance_name: str = ""
    status: str = ""
    region: str = ""
    zones: List[str] = field(default_factory=list)
    version: str = ""
    spec_type: str = ""
    broker_count: int = 0
    storage_gb: int = 0
    vpc_id: str = ""
    subnet_ids: List[str] = field(default_factory=list)
    endpoints: List[str] = field(default_factory=list)
    charge_type: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class SearchCluster:
    """Managed search cluster (Elasticsearch/OpenSearch compatible)."""

    instance_id: str
    instance_name: str = ""
    status: str = ""
    region: str = ""
    version: str = ""
    node_type: str = ""
    node_count: int = 0
    storage_gb: int = 0
    vpc_id: str = ""
    subnet_ids: List[str] = field(default_factory=list)
    endpoint: str = ""
    charge_type: str = ""
    creation_time: Optional[datetime] = None
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class CloudGroup:
    """Provider-side user group."""

    group_id: str
    group_name: str
    description: str = ""
    policy_ids: List[str] = field(default_factory=list)
    user_ids: List[str] = field(default_factory=list)
    creation_time: Optional[datetime] = None


@dataclass
class PolicySyncResult:
    """Outcome of reconciling the policies attached to one identity."""

    target_id: str
    attached: List[str] = field(default_factory=list)
    detached: List[str] = field(default_factory=list)
    unchanged: int = 0

    @property
    def total_operations(self) -> int:
        return len(self.attached) + len(self.detached)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "attached": self.attached,
            "detached": self.detached,
            "unchanged": self.unchanged,
        }
