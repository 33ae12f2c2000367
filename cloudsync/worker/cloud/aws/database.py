"""RDS, ElastiCache (Redis) and DocumentDB."""

# flake8: noqa: E501


from typing import Any, Dict

from cloudsync.shared.errors import ResourceNotFoundError
from cloudsync.worker.cloud.aws.adapter import tags_to_dict
from cloudsync.worker.cloud.base import ResourceAdapter, ResourceKind
from cloudsync.worker.cloud.types import (
    CacheInstance,
    DatabaseInstance,
    DocumentDBInstance,
    ResourcePage,
)

PAGE_SIZE = 100

# DescribeDBInstances also returns DocumentDB and Neptune members
NON_RELATIONAL_ENGINES = {"docdb", "neptune"}


class RDSDatabase(ResourceAdapter):
    kind = ResourceKind.RELATIONAL_DB

    def _to_instance(self, item: Dict[str, Any], region: str) -> DatabaseInstance:
        endpoint = item.get("Endpoint") or {}
        return DatabaseInstance(
            instance_id=item["DBInstanceIdentifier"],
            instance_name=item.get("DBName") or item["DBInstanceIdentifier"],
            status=item.get("DBInstanceStatus", ""),
            region=region,
            zone=item.get("AvailabilityZone", ""),
            engine=item.get("Engine", ""),
            engine_version=item.get("EngineVersion", ""),
            instance_class=item.get("DBInstanceClass", ""),
            storage_gb=item.get("AllocatedStorage", 0),
            storage_type=item.get("StorageType", ""),
            multi_az=bool(item.get("MultiAZ", False)),
            vpc_id=(item.get("DBSubnetGroup") or {}).get("VpcId", ""),
            subnet_group=(item.get("DBSubnetGroup") or {}).get("DBSubnetGroupName", ""),
            endpoint=endpoint.get("Address", ""),
            port=endpoint.get("Port", 0),
            charge_type="on_demand",
            creation_time=item.get("InstanceCreateTime"),
            tags=tags_to_dict(item.get("TagList")),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        rds = self.adapter.client("rds", region)
        kwargs: Dict[str, Any] = {"MaxRecords": PAGE_SIZE}
        if next_token:
            kwargs["Marker"] = next_token
        if filters and filters.get("engine"):
            kwargs["Filters"] = [{"Name": "engine", "Values": [filters["engine"]]}]

        response = self.call(lambda: rds.describe_db_instances(**kwargs))
        items = [
            self._to_instance(db, region)
            for db in response.get("DBInstances", [])
            if db.get("Engine") not in NON_RELATIONAL_ENGINES
        ]
        return ResourcePage(items=items, next_token=response.get("Marker"))

    def get_instance(self, region: str, instance_id: str) -> DatabaseInstance:
        rds = self.adapter.client("rds", region)
        response = self.call(lambda: rds.describe_db_instances(DBInstanceIdentifier=instance_id))
        instances = response.get("DBInstances", [])
        if not instances:
            raise ResourceNotFoundError(f"rds instance {instance_id} not found", provider=self.provider)
        return self._to_instance(instances[0], region)


class ElastiCacheRedis(ResourceAdapter):
    """Redis replication groups."""

    kind = ResourceKind.CACHE

    def _to_instance(self, item: Dict[str, Any], region: str) -> CacheInstance:
        endpoint = item.get("ConfigurationEndpoint") or {}
        if not endpoint:
            node_groups = item.get("NodeGroups") or [{}]
            endpoint = node_groups[0].get("PrimaryEndpoint") or {}
        members = item.get("MemberClusters", [])
        return CacheInstance(
            instance_id=item["ReplicationGroupId"],
            instance_name=item.get("Description") or item["ReplicationGroupId"],
            status=item.get("Status", ""),
            region=region,
            node_type=item.get("CacheNodeType", ""),
            node_count=len(members),
            architecture="cluster" if item.get("ClusterEnabled") else "standard",
            endpoint=endpoint.get("Address", ""),
            port=endpoint.get("Port", 0),
            charge_type="on_demand",
            creation_time=item.get("ReplicationGroupCreateTime"),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        client = self.adapter.client("elasticache", region)
        kwargs: Dict[str, Any] = {"MaxRecords": PAGE_SIZE}
        if next_token:
            kwargs["Marker"] = next_token
        response = self.call(lambda: client.describe_replication_groups(**kwargs))
        items = [self._to_instance(g, region) for g in response.get("ReplicationGroups", [])]
        return ResourcePage(items=items, next_token=response.get("Marker"))

    def get_instance(self, region: str, instance_id: str) -> CacheInstance:
        client = self.adapter.client("elasticache", region)
        response = self.call(lambda: client.describe_replication_groups(ReplicationGroupId=instance_id))
        groups = response.get("ReplicationGroups", [])
        if not groups:
            raise ResourceNotFoundError(f"redis group {instance_id} not found", provider=self.provider)
        return self._to_instance(groups[0], region)


class DocumentDBCapability(ResourceAdapter):
    """DocumentDB clusters (MongoDB compatible)."""

    kind = ResourceKind.DOCUMENT_DB

    def _to_instance(self, item: Dict[str, Any], region: str) -> DocumentDBInstance:
        zones = item.get("AvailabilityZones") or [""]
        return DocumentDBInstance(
            instance_id=item["DBClusterIdentifier"],
            instance_name=item.get("DatabaseName") or item["DBClusterIdentifier"],
            status=item.get("Status", ""),
            region=region,
            zone=zones[0],
            engine_version=item.get("EngineVersion", ""),
            node_count=len(item.get("DBClusterMembers", [])),
            storage_gb=item.get("AllocatedStorage", 0),
            subnet_group=item.get("DBSubnetGroup", ""),
            endpoint=item.get("Endpoint", ""),
            port=item.get("Port", 0),
            charge_type="on_demand",
            creation_time=item.get("ClusterCreateTime"),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        client = self.adapter.client("docdb", region)
        kwargs: Dict[str, Any] = {
            "MaxRecords": PAGE_SIZE,
            "Filters": [{"Name": "engine", "Values": ["docdb"]}],
        }
        if next_token:
            kwargs["Marker"] = next_token
        response = self.call(lambda: client.describe_db_clusters(**kwargs))
        items = [self._to_instance(c, region) for c in response.get("DBClusters", [])]
        return ResourcePage(items=items, next_token=response.get("Marker"))

    def get_instance(self, region: str, instance_id: str) -> DocumentDBInstance:
        client = self.adapter.client("docdb", region)
        response = self.call(lambda: client.describe_db_clusters(DBClusterIdentifier=instance_id))
        clusters = response.get("DBClusters", [])
        if not clusters:
            raise ResourceNotFoundError(f"docdb cluster {instance_id} not found", provider=self.provider)
        return self._to_instance(clusters[0], region)
