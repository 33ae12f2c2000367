"""EFS file systems and S3 buckets."""

# flake8: noqa: E501


from typing import Any, Dict

from cloudsync.shared.errors import ResourceNotFoundError
from cloudsync.worker.cloud.aws.adapter import tags_to_dict
from cloudsync.worker.cloud.base import ResourceAdapter, ResourceKind
from cloudsync.worker.cloud.types import Bucket, FileSystem, ResourcePage


class EFSFileSystems(ResourceAdapter):
    kind = ResourceKind.FILE_STORAGE

    def _to_file_system(self, item: Dict[str, Any], region: str) -> FileSystem:
        size = item.get("SizeInBytes") or {}
        return FileSystem(
            file_system_id=item["FileSystemId"],
            name=item.get("Name", ""),
            status=item.get("LifeCycleState", ""),
            region=region,
            zone=item.get("AvailabilityZoneName", ""),
            protocol_type="NFS",
            storage_type=item.get("PerformanceMode", ""),
            used_bytes=size.get("Value", 0),
            encrypted=bool(item.get("Encrypted", False)),
            mount_target_count=item.get("NumberOfMountTargets", 0),
            creation_time=item.get("CreationTime"),
            tags=tags_to_dict(item.get("Tags")),
        )

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        efs = self.adapter.client("efs", region)
        kwargs: Dict[str, Any] = {"MaxItems": 100}
        if next_token:
            kwargs["Marker"] = next_token
        response = self.call(lambda: efs.describe_file_systems(**kwargs))
        items = [self._to_file_system(fs, region) for fs in response.get("FileSystems", [])]
        return ResourcePage(items=items, next_token=response.get("NextMarker"))

    def get_instance(self, region: str, instance_id: str) -> FileSystem:
        efs = self.adapter.client("efs", region)
        response = self.call(lambda: efs.describe_file_systems(FileSystemId=instance_id))
        systems = response.get("FileSystems", [])
        if not systems:
            raise ResourceNotFoundError(f"file system {instance_id} not found", provider=self.provider)
        return self._to_file_system(systems[0], region)


class S3Buckets(ResourceAdapter):
    """S3 buckets, listed per region with ListBuckets(BucketRegion=...)."""

    kind = ResourceKind.OBJECT_STORAGE

    def list_page(self, region, filters=None, next_token=None) -> ResourcePage:
        s3 = self.adapter.client("s3", region)
        kwargs: Dict[str, Any] = {"MaxBuckets": 1000, "BucketRegion": region}
        if next_token:
            kwargs["ContinuationToken"] = next_token
        response = self.call(lambda: s3.list_buckets(**kwargs))
        items = [
            Bucket(
                bucket_name=b["Name"],
                region=b.get("BucketRegion") or region,
                creation_time=b.get("CreationDate"),
            )
            for b in response.get("Buckets", [])
        ]
        return ResourcePage(items=items, next_token=response.get("ContinuationToken"))

    def get_instance(self, region: str, instance_id: str) -> Bucket:
        s3 = self.adapter.client("s3", region)
        location = self.call(lambda: s3.get_bucket_location(Bucket=instance_id))
        versioning = self.call(lambda: s3.get_bucket_versioning(Bucket=instance_id))
        return Bucket(
            bucket_name=instance_id,
            # us-east-1 buckets report a null LocationConstraint
            region=location.get("LocationConstraint") or "us-east-1",
            versioning=versioning.get("Status", "Disabled"),
        )
