"""MSK (Kafka) clusters and OpenSearch domains."""

# flake8: noqa: E501


from typing import Any, Dict, List

from cloudsync.shared.errors import ResourceNotFoundError
from cloudsync.worker.cloud.base import ResourceAdapter, ResourceKind
from cloudsync.worker.cloud.types import BrokerInstance, ResourcePage, SearchCluster

# DescribeDomains accepts at most five names per call
DESCRIBE_DOMAINS_BATCH = 5


class MSKKafka(ResourceAdapter):
    kind = ResourceKind.MESSAGE_BROKER

    def _to_broker(self, item: Dict[str, Any], region: str) -> BrokerInstance:
        provisioned = item.get("Provisioned") or {}
        broker_info = provisioned.get("BrokerNodeGroupInfo") or {}
        storage = (broker_info.get("StorageInfo") or {}).get("EbsStorageInfo") or {}
        version = (provisioned.get("CurrentBrokerSoftwareInfo") or {}).get("KafkaVersion", "")
        return BrokerInstance(
            instance_id=item["ClusterArn"],
            instance_name=item.get("ClusterName", ""),
            status=item.get("State", ""),
            region=region,
            version=version,
            spec_type=broker_info.get("InstanceType", ""),
            broker_count=provisioned.get("NumberOfBrokerNodes", 0),
            storage_gb=storage.get("VolumeSize", 0),
            subnet_ids=list(broker_info.get("ClientSubnets", [])),
            charge_type="serverless" if item.get("ClusterType") == "SERVERLESS" else "on_demand",
            creation_time=item.get("CreationTime"),
            tags=dict(item.get("Tags") or {}),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        kafka = self.adapter.client("kafka", region)
        kwargs: Dict[str, Any] = {"MaxResults": 100}
        if next_token:
            kwargs["NextToken"] = next_token
        response = self.call(lambda: kafka.list_clusters_v2(**kwargs))
        items = [self._to_broker(c, region) for c in response.get("ClusterInfoList", [])]
        return ResourcePage(items=items, next_token=response.get("NextToken"))

    def get_instance(self, region: str, instance_id: str) -> BrokerInstance:
        kafka = self.adapter.client("kafka", region)
        response = self.call(lambda: kafka.describe_cluster_v2(ClusterArn=instance_id))
        info = response.get("ClusterInfo")
        if not info:
            raise ResourceNotFoundError(f"kafka cluster {instance_id} not found", provider=self.provider)
        return self._to_broker(info, region)


class OpenSearchClusters(ResourceAdapter):
    kind = ResourceKind.SEARCH

    def _to_cluster(self, item: Dict[str, Any], region: str) -> SearchCluster:
        cluster_config = item.get("ClusterConfig") or {}
        ebs = item.get("EBSOptions") or {}
        vpc = item.get("VPCOptions") or {}
        if item.get("Deleted"):
            status = "deleting"
        elif item.get("Processing"):
            status = "processing"
        else:
            status = "active"
        return SearchCluster(
            instance_id=item["DomainId"],
            instance_name=item.get("DomainName", ""),
            status=status,
            region=region,
            version=item.get("EngineVersion", ""),
            node_type=cluster_config.get("InstanceType", ""),
            node_count=cluster_config.get("InstanceCount", 0),
            storage_gb=ebs.get("VolumeSize", 0),
            vpc_id=vpc.get("VPCId", ""),
            subnet_ids=list(vpc.get("SubnetIds", [])),
            endpoint=item.get("Endpoint") or (item.get("Endpoints") or {}).get("vpc", ""),
            charge_type="on_demand",
        )

    def _describe(self, region: str, names: List[str]) -> List[SearchCluster]:
        client = self.adapter.client("opensearch", region)
        clusters = []
        for i in range(0, len(names), DESCRIBE_DOMAINS_BATCH):
            batch = names[i : i + DESCRIBE_DOMAINS_BATCH]
            response = self.call(lambda: client.describe_domains(DomainNames=batch))
            clusters.extend(self._to_cluster(d, region) for d in response.get("DomainStatusList", []))
        return clusters

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        # ListDomainNames returns every domain at once
        client = self.adapter.client("opensearch", region)
        response = self.call(lambda: client.list_domain_names())
        names = [d["DomainName"] for d in response.get("DomainNames", [])]
        return ResourcePage(items=self._describe(region, names))

    def get_instance(self, region: str, instance_id: str) -> SearchCluster:
        for cluster in self.list_instances(region):
            if cluster.instance_id == instance_id or cluster.instance_name == instance_id:
                return cluster
        raise ResourceNotFoundError(f"search domain {instance_id} not found", provider=self.provider)
