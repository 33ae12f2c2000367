"""EC2 instances."""

# flake8: noqa: E501


from typing import Any, Dict, List, Optional

from cloudsync.shared.errors import ResourceNotFoundError
from cloudsync.worker.cloud.aws.adapter import name_from_tags, tags_to_dict
from cloudsync.worker.cloud.base import ResourceAdapter, ResourceKind
from cloudsync.worker.cloud.types import ComputeInstance, ResourcePage

PAGE_SIZE = 100


def to_aws_filters(filters: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """``{"instance-state-name": "running"}`` -> EC2 Filters list."""
    result = []
    for name, values in (filters or {}).items():
        if not isinstance(values, (list, tuple)):
            values = [values]
        result.append({"Name": name, "Values": [str(v) for v in values]})
    return result


class EC2Compute(ResourceAdapter):
    kind = ResourceKind.COMPUTE

    def _to_instance(self, item: Dict[str, Any], region: str) -> ComputeInstance:
        cpu_options = item.get("CpuOptions", {})
        security_groups = [g.get("GroupId", "") for g in item.get("SecurityGroups", [])]
        return ComputeInstance(
            instance_id=item["InstanceId"],
            instance_name=name_from_tags(item.get("Tags")),
            status=item.get("State", {}).get("Name", ""),
            region=region,
            zone=item.get("Placement", {}).get("AvailabilityZone", ""),
            instance_type=item.get("InstanceType", ""),
            cpu=cpu_options.get("CoreCount", 0) * cpu_options.get("ThreadsPerCore", 1),
            os_type=item.get("Platform", "linux"),
            os_name=item.get("PlatformDetails", ""),
            image_id=item.get("ImageId", ""),
            vpc_id=item.get("VpcId", ""),
            subnet_id=item.get("SubnetId", ""),
            private_ip=item.get("PrivateIpAddress", ""),
            public_ip=item.get("PublicIpAddress", ""),
            security_group_ids=security_groups,
            charge_type="spot" if item.get("InstanceLifecycle") == "spot" else "on_demand",
            creation_time=item.get("LaunchTime"),
            tags=tags_to_dict(item.get("Tags")),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        ec2 = self.adapter.client("ec2", region)
        kwargs: Dict[str, Any] = {"MaxResults": PAGE_SIZE}
        if filters:
            kwargs["Filters"] = to_aws_filters(filters)
        if next_token:
            kwargs["NextToken"] = next_token

        response = self.call(lambda: ec2.describe_instances(**kwargs))
        items = [
            self._to_instance(instance, region)
            for reservation in response.get("Reservations", [])
            for instance in reservation.get("Instances", [])
        ]
        return ResourcePage(items=items, next_token=response.get("NextToken"))

    def get_instance(self, region: str, instance_id: str) -> ComputeInstance:
        ec2 = self.adapter.client("ec2", region)
        response = self.call(lambda: ec2.describe_instances(InstanceIds=[instance_id]))
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return self._to_instance(instance, region)
        raise ResourceNotFoundError(f"ec2 instance {instance_id} not found", provider=self.provider)
