"""VPCs and Elastic IPs."""

# flake8: noqa: E501


from typing import Any, Dict

from cloudsync.shared.errors import ResourceNotFoundError
from cloudsync.worker.cloud.aws.adapter import name_from_tags, tags_to_dict
from cloudsync.worker.cloud.aws.compute import to_aws_filters
from cloudsync.worker.cloud.base import ResourceAdapter, ResourceKind
from cloudsync.worker.cloud.types import EIP, VPC, ResourcePage


class VPCNetwork(ResourceAdapter):
    kind = ResourceKind.NETWORK

    def _to_vpc(self, item: Dict[str, Any], region: str) -> VPC:
        ipv6 = item.get("Ipv6CidrBlockAssociationSet") or [{}]
        return VPC(
            vpc_id=item["VpcId"],
            vpc_name=name_from_tags(item.get("Tags")),
            status=item.get("State", ""),
            region=region,
            cidr_block=item.get("CidrBlock", ""),
            ipv6_cidr_block=ipv6[0].get("Ipv6CidrBlock", ""),
            is_default=bool(item.get("IsDefault", False)),
            tags=tags_to_dict(item.get("Tags")),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        ec2 = self.adapter.client("ec2", region)
        kwargs: Dict[str, Any] = {"MaxResults": 100}
        if filters:
            kwargs["Filters"] = to_aws_filters(filters)
        if next_token:
            kwargs["NextToken"] = next_token
        response = self.call(lambda: ec2.describe_vpcs(**kwargs))
        items = [self._to_vpc(v, region) for v in response.get("Vpcs", [])]
        return ResourcePage(items=items, next_token=response.get("NextToken"))

    def get_instance(self, region: str, instance_id: str) -> VPC:
        ec2 = self.adapter.client("ec2", region)
        response = self.call(lambda: ec2.describe_vpcs(VpcIds=[instance_id]))
        vpcs = response.get("Vpcs", [])
        if not vpcs:
            raise ResourceNotFoundError(f"vpc {instance_id} not found", provider=self.provider)
        return self._to_vpc(vpcs[0], region)


class ElasticIPs(ResourceAdapter):
    """Elastic IPs. DescribeAddresses is not paginated."""

    kind = ResourceKind.PUBLIC_IP

    def _to_eip(self, item: Dict[str, Any], region: str) -> EIP:
        associated = bool(item.get("AssociationId"))
        return EIP(
            allocation_id=item.get("AllocationId") or item.get("PublicIp", ""),
            ip_address=item.get("PublicIp", ""),
            name=name_from_tags(item.get("Tags")),
            status="in_use" if associated else "available",
            region=region,
            instance_id=item.get("InstanceId", ""),
            instance_type="ecs" if item.get("InstanceId") else "",
            network_interface_id=item.get("NetworkInterfaceId", ""),
            private_ip=item.get("PrivateIpAddress", ""),
            charge_type="on_demand",
            tags=tags_to_dict(item.get("Tags")),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        ec2 = self.adapter.client("ec2", region)
        kwargs: Dict[str, Any] = {}
        if filters:
            kwargs["Filters"] = to_aws_filters(filters)
        response = self.call(lambda: ec2.describe_addresses(**kwargs))
        return ResourcePage(items=[self._to_eip(a, region) for a in response.get("Addresses", [])])

    def get_instance(self, region: str, instance_id: str) -> EIP:
        ec2 = self.adapter.client("ec2", region)
        response = self.call(lambda: ec2.describe_addresses(AllocationIds=[instance_id]))
        addresses = response.get("Addresses", [])
        if not addresses:
            raise ResourceNotFoundError(f"eip {instance_id} not found", provider=self.provider)
        return self._to_eip(addresses[0], region)
