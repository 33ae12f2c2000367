"""Reconcilable resource kinds and their converters.

The reconciliation engine is the same for every kind. What varies is
captured in a KindSpec: which capability lists the records, how to read a
record's provider id, and how to turn it into an asset Instance.
"""

# flake8: noqa: E501


from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from cloudsync.shared.models.domain import Instance
from cloudsync.worker.cloud.base import ResourceKind
from cloudsync.worker.cloud.types import (
    EIP,
    VPC,
    BrokerInstance,
    Bucket,
    CacheInstance,
    ComputeInstance,
    DatabaseInstance,
    DocumentDBInstance,
    FileSystem,
    SearchCluster,
)
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConvertContext:
    """Scope a record is converted in."""

    tenant_id: str
    account_id: int
    provider: str
    region: str


def model_uid(provider: str, kind: ResourceKind) -> str:
    """Asset model id, e.g. ``aws_ecs``."""
    return f"{provider}_{kind.value}"


def _ts(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _base_attributes(ctx: ConvertContext, region: str) -> Dict[str, Any]:
    return {
        "provider": ctx.provider,
        "cloud_account_id": ctx.account_id,
        "region": region or ctx.region,
    }


def _instance(ctx: ConvertContext, kind: ResourceKind, asset_id: str, name: str, attributes: Dict[str, Any]) -> Instance:
    return Instance(
        tenant_id=ctx.tenant_id,
        model_uid=model_uid(ctx.provider, kind),
        asset_id=asset_id,
        asset_name=name or asset_id,
        account_id=ctx.account_id,
        attributes=attributes,
    )


def convert_compute(record: ComputeInstance, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        zone=record.zone,
        instance_id=record.instance_id,
        instance_name=record.instance_name,
        status=record.status,
        instance_type=record.instance_type,
        cpu=record.cpu,
        memory=record.memory_mb,
        os_type=record.os_type,
        os_name=record.os_name,
        image_id=record.image_id,
        vpc_id=record.vpc_id,
        subnet_id=record.subnet_id,
        private_ip=record.private_ip,
        public_ip=record.public_ip,
        security_groups=list(record.security_group_ids),
        charge_type=record.charge_type,
        creation_time=_ts(record.creation_time),
        expired_time=_ts(record.expired_time),
        tags=dict(record.tags),
        description=record.description,
    )
    return _instance(ctx, ResourceKind.COMPUTE, record.instance_id, record.instance_name, attrs)


def convert_rds(record: DatabaseInstance, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        zone=record.zone,
        instance_id=record.instance_id,
        instance_name=record.instance_name,
        status=record.status,
        engine=record.engine,
        engine_version=record.engine_version,
        instance_class=record.instance_class,
        storage=record.storage_gb,
        storage_type=record.storage_type,
        multi_az=record.multi_az,
        vpc_id=record.vpc_id,
        subnet_group=record.subnet_group,
        connection_string=record.endpoint,
        port=record.port,
        charge_type=record.charge_type,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
        description=record.description,
    )
    return _instance(ctx, ResourceKind.RELATIONAL_DB, record.instance_id, record.instance_name, attrs)


def convert_redis(record: CacheInstance, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        zone=record.zone,
        instance_id=record.instance_id,
        instance_name=record.instance_name,
        status=record.status,
        engine_version=record.engine_version,
        instance_class=record.node_type,
        node_count=record.node_count,
        capacity=record.capacity_mb,
        architecture=record.architecture,
        vpc_id=record.vpc_id,
        subnet_id=record.subnet_id,
        connection_domain=record.endpoint,
        port=record.port,
        charge_type=record.charge_type,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
    )
    return _instance(ctx, ResourceKind.CACHE, record.instance_id, record.instance_name, attrs)


def convert_mongodb(record: DocumentDBInstance, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        zone=record.zone,
        instance_id=record.instance_id,
        instance_name=record.instance_name,
        status=record.status,
        engine_version=record.engine_version,
        instance_class=record.instance_class,
        node_count=record.node_count,
        storage=record.storage_gb,
        vpc_id=record.vpc_id,
        subnet_group=record.subnet_group,
        connection_string=record.endpoint,
        port=record.port,
        charge_type=record.charge_type,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
    )
    return _instance(ctx, ResourceKind.DOCUMENT_DB, record.instance_id, record.instance_name, attrs)


def convert_vpc(record: VPC, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        vpc_id=record.vpc_id,
        vpc_name=record.vpc_name,
        status=record.status,
        cidr_block=record.cidr_block,
        ipv6_cidr_block=record.ipv6_cidr_block,
        is_default=record.is_default,
        subnet_count=record.subnet_count,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
        description=record.description,
    )
    return _instance(ctx, ResourceKind.NETWORK, record.vpc_id, record.vpc_name, attrs)


def convert_eip(record: EIP, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        allocation_id=record.allocation_id,
        ip_address=record.ip_address,
        name=record.name,
        status=record.status,
        bandwidth=record.bandwidth,
        instance_id=record.instance_id,
        instance_type=record.instance_type,
        network_interface_id=record.network_interface_id,
        private_ip=record.private_ip,
        charge_type=record.charge_type,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
    )
    # Unnamed addresses are listed by their IP
    return _instance(ctx, ResourceKind.PUBLIC_IP, record.allocation_id, record.name or record.ip_address, attrs)


def convert_nas(record: FileSystem, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        zone=record.zone,
        file_system_id=record.file_system_id,
        name=record.name,
        status=record.status,
        protocol_type=record.protocol_type,
        storage_type=record.storage_type,
        capacity=record.capacity_bytes,
        used_capacity=record.used_bytes,
        encrypted=record.encrypted,
        mount_target_count=record.mount_target_count,
        vpc_id=record.vpc_id,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
        description=record.description,
    )
    return _instance(ctx, ResourceKind.FILE_STORAGE, record.file_system_id, record.name, attrs)


def convert_oss(record: Bucket, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        bucket_name=record.bucket_name,
        storage_class=record.storage_class,
        acl=record.acl,
        versioning=record.versioning,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
    )
    return _instance(ctx, ResourceKind.OBJECT_STORAGE, record.bucket_name, record.bucket_name, attrs)


def convert_kafka(record: BrokerInstance, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        zones=list(record.zones),
        instance_id=record.instance_id,
        instance_name=record.instance_name,
        status=record.status,
        version=record.version,
        spec_type=record.spec_type,
        broker_count=record.broker_count,
        storage=record.storage_gb,
        vpc_id=record.vpc_id,
        subnet_ids=list(record.subnet_ids),
        endpoints=list(record.endpoints),
        charge_type=record.charge_type,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
    )
    return _instance(ctx, ResourceKind.MESSAGE_BROKER, record.instance_id, record.instance_name, attrs)


def convert_elasticsearch(record: SearchCluster, ctx: ConvertContext) -> Instance:
    attrs = _base_attributes(ctx, record.region)
    attrs.update(
        instance_id=record.instance_id,
        instance_name=record.instance_name,
        status=record.status,
        version=record.version,
        node_type=record.node_type,
        node_count=record.node_count,
        storage=record.storage_gb,
        vpc_id=record.vpc_id,
        subnet_ids=list(record.subnet_ids),
        endpoint=record.endpoint,
        charge_type=record.charge_type,
        creation_time=_ts(record.creation_time),
        tags=dict(record.tags),
    )
    return _instance(ctx, ResourceKind.SEARCH, record.instance_id, record.instance_name, attrs)


@dataclass(frozen=True)
class KindSpec:
    """Everything the reconciliation engine needs to know about one kind."""

    kind: ResourceKind
    key: Callable[[Any], str]
    convert: Callable[[Any, ConvertContext], Instance]

    def model_uid(self, provider: str) -> str:
        return model_uid(provider, self.kind)


KIND_SPECS: Dict[ResourceKind, KindSpec] = {
    spec.kind: spec
    for spec in (
        KindSpec(ResourceKind.COMPUTE, lambda r: r.instance_id, convert_compute),
        KindSpec(ResourceKind.RELATIONAL_DB, lambda r: r.instance_id, convert_rds),
        KindSpec(ResourceKind.CACHE, lambda r: r.instance_id, convert_redis),
        KindSpec(ResourceKind.DOCUMENT_DB, lambda r: r.instance_id, convert_mongodb),
        KindSpec(ResourceKind.NETWORK, lambda r: r.vpc_id, convert_vpc),
        KindSpec(ResourceKind.PUBLIC_IP, lambda r: r.allocation_id, convert_eip),
        KindSpec(ResourceKind.FILE_STORAGE, lambda r: r.file_system_id, convert_nas),
        KindSpec(ResourceKind.OBJECT_STORAGE, lambda r: r.bucket_name, convert_oss),
        KindSpec(ResourceKind.MESSAGE_BROKER, lambda r: r.instance_id, convert_kafka),
        KindSpec(ResourceKind.SEARCH, lambda r: r.instance_id, convert_elasticsearch),
    )
}

ASSET_TYPE_ALIASES: Dict[str, List[ResourceKind]] = {
    "database": [ResourceKind.RELATIONAL_DB, ResourceKind.CACHE, ResourceKind.DOCUMENT_DB],
    "db": [ResourceKind.RELATIONAL_DB, ResourceKind.CACHE, ResourceKind.DOCUMENT_DB],
    "network": [ResourceKind.NETWORK, ResourceKind.PUBLIC_IP],
    "net": [ResourceKind.NETWORK, ResourceKind.PUBLIC_IP],
    "storage": [ResourceKind.FILE_STORAGE, ResourceKind.OBJECT_STORAGE],
    "middleware": [ResourceKind.MESSAGE_BROKER, ResourceKind.SEARCH],
    "mw": [ResourceKind.MESSAGE_BROKER, ResourceKind.SEARCH],
    "compute": [ResourceKind.COMPUTE],
}


def expand_asset_types(names: Optional[Iterable[str]]) -> List[ResourceKind]:
    """Resolve kind names and aliases to reconcilable kinds.

    Empty input means every kind. Unknown names are logged and dropped;
    duplicates collapse keeping first-seen order.
    """
    if not names:
        return list(KIND_SPECS)

    kinds: List[ResourceKind] = []
    for name in names:
        key = name.strip().lower()
        if key in ASSET_TYPE_ALIASES:
            candidates = ASSET_TYPE_ALIASES[key]
        else:
            try:
                candidates = [ResourceKind(key)]
            except ValueError:
                logger.warning("unknown asset type ignored", asset_type=name)
                continue
            if candidates[0] not in KIND_SPECS:
                logger.warning("asset type is not reconcilable", asset_type=name)
                continue
        for kind in candidates:
            if kind not in kinds:
                kinds.append(kind)
    return kinds
