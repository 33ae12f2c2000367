"""AWS IAM identity capability.

AWS addresses users and groups by name, so ``cloud_user_id`` holds the IAM
user name and policy ids are policy ARNs.
"""

# flake8: noqa: E501


from typing import Any, Callable, Dict, List, Optional

from cloudsync.shared.models.domain import (
    CloudUser,
    PermissionPolicy,
    PolicyType,
    UserMetadata,
    UserType,
)
from cloudsync.worker.cloud.aws.adapter import tags_to_dict
from cloudsync.worker.cloud.base import IdentityAdapter
from cloudsync.worker.cloud.types import CloudGroup
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


class AWSIdentity(IdentityAdapter):
    """IAM users, groups and managed policies."""

    @property
    def iam(self):
        # IAM is a global service
        return self.adapter.client("iam", "us-east-1")

    def _collect(self, fetch: Callable[[Dict[str, Any]], Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
        """Follow IAM Marker pagination, one rate-limited call per page."""
        items: List[Dict[str, Any]] = []
        marker: Optional[str] = None
        while True:
            kwargs: Dict[str, Any] = {"MaxItems": 100}
            if marker:
                kwargs["Marker"] = marker
            response = self.call(lambda: fetch(kwargs))
            items.extend(response.get(key, []))
            if not response.get("IsTruncated"):
                return items
            marker = response.get("Marker")

    def validate_credentials(self) -> Dict[str, Any]:
        sts = self.adapter.client("sts")
        identity = self.call(lambda: sts.get_caller_identity())
        return {
            "account": identity.get("Account"),
            "arn": identity.get("Arn"),
            "user_id": identity.get("UserId"),
        }

    # ==========================================
    # Users
    # ==========================================

    def _to_user(self, item: Dict[str, Any], with_details: bool = True) -> CloudUser:
        user_name = item["UserName"]
        metadata = UserMetadata(
            last_login_time=item.get("PasswordLastUsed"),
            tags=tags_to_dict(item.get("Tags")),
        )
        if with_details:
            keys = self.call(lambda: self.iam.list_access_keys(UserName=user_name))
            metadata.access_key_count = len(keys.get("AccessKeyMetadata", []))
            mfa = self.call(lambda: self.iam.list_mfa_devices(UserName=user_name))
            metadata.mfa_enabled = bool(mfa.get("MFADevices"))
        return CloudUser(
            username=user_name,
            cloud_user_id=user_name,
            provider=self.provider,
            cloud_account_id=self.adapter.account.id,
            tenant_id=self.adapter.account.tenant_id,
            user_type=UserType.IAM_USER.value,
            display_name=user_name,
            metadata=metadata,
        )

    def list_users(self) -> List[CloudUser]:
        items = self._collect(lambda kw: self.iam.list_users(**kw), "Users")
        return [self._to_user(item) for item in items]

    def get_user(self, user_id: str) -> CloudUser:
        response = self.call(lambda: self.iam.get_user(UserName=user_id))
        return self._to_user(response["User"])

    def create_user(self, username: str, display_name: str = "", email: str = "") -> CloudUser:
        tags = []
        if display_name:
            tags.append({"Key": "DisplayName", "Value": display_name})
        if email:
            tags.append({"Key": "Email", "Value": email})
        kwargs: Dict[str, Any] = {"UserName": username}
        if tags:
            kwargs["Tags"] = tags
        response = self.call(lambda: self.iam.create_user(**kwargs))
        user = self._to_user(response["User"], with_details=False)
        user.display_name = display_name or username
        user.email = email
        return user

    def delete_user(self, user_id: str) -> None:
        """Delete a user after removing what IAM requires to be removed first."""
        for policy in self.get_user_policies(user_id):
            self.detach_user_policy(user_id, policy.policy_id)
        groups = self._collect(lambda kw: self.iam.list_groups_for_user(UserName=user_id, **kw), "Groups")
        for group in groups:
            self.remove_user_from_group(group["GroupName"], user_id)
        keys = self.call(lambda: self.iam.list_access_keys(UserName=user_id))
        for key in keys.get("AccessKeyMetadata", []):
            key_id = key["AccessKeyId"]
            self.call(lambda: self.iam.delete_access_key(UserName=user_id, AccessKeyId=key_id))
        self.call(lambda: self.iam.delete_user(UserName=user_id))
        logger.info("iam user deleted", user_name=user_id)

    # ==========================================
    # Policies
    # ==========================================

    @staticmethod
    def _to_policy(item: Dict[str, Any], policy_type: str) -> PermissionPolicy:
        return PermissionPolicy(
            policy_id=item.get("PolicyArn") or item.get("Arn", ""),
            policy_name=item.get("PolicyName", ""),
            provider="aws",
            policy_type=policy_type,
        )

    @staticmethod
    def _type_from_arn(arn: str) -> str:
        return PolicyType.SYSTEM.value if arn.startswith("arn:aws:iam::aws:") else PolicyType.CUSTOM.value

    def list_policies(self, policy_type: Optional[str] = None) -> List[PermissionPolicy]:
        scope = {"system": "AWS", "custom": "Local"}.get(policy_type or "", "All")
        items = self._collect(lambda kw: self.iam.list_policies(Scope=scope, **kw), "Policies")
        return [self._to_policy(p, self._type_from_arn(p.get("Arn", ""))) for p in items]

    def get_policy(self, policy_id: str) -> PermissionPolicy:
        response = self.call(lambda: self.iam.get_policy(PolicyArn=policy_id))
        policy = self._to_policy(response["Policy"], self._type_from_arn(policy_id))
        policy.policy_id = policy_id
        return policy

    def get_user_policies(self, user_id: str) -> List[PermissionPolicy]:
        items = self._collect(
            lambda kw: self.iam.list_attached_user_policies(UserName=user_id, **kw), "AttachedPolicies"
        )
        return [self._to_policy(p, self._type_from_arn(p["PolicyArn"])) for p in items]

    def attach_user_policy(self, user_id: str, policy: PermissionPolicy) -> None:
        self.call(lambda: self.iam.attach_user_policy(UserName=user_id, PolicyArn=policy.policy_id))

    def detach_user_policy(self, user_id: str, policy_id: str) -> None:
        self.call(lambda: self.iam.detach_user_policy(UserName=user_id, PolicyArn=policy_id))

    # ==========================================
    # Groups
    # ==========================================

    @staticmethod
    def _to_group(item: Dict[str, Any]) -> CloudGroup:
        return CloudGroup(
            group_id=item["GroupName"],
            group_name=item["GroupName"],
            creation_time=item.get("CreateDate"),
        )

    def list_groups(self) -> List[CloudGroup]:
        items = self._collect(lambda kw: self.iam.list_groups(**kw), "Groups")
        return [self._to_group(g) for g in items]

    def get_group(self, group_id: str) -> CloudGroup:
        response = self.call(lambda: self.iam.get_group(GroupName=group_id))
        group = self._to_group(response["Group"])
        group.user_ids = [u["UserName"] for u in response.get("Users", [])]
        group.policy_ids = [p.policy_id for p in self.get_group_policies(group_id)]
        return group

    def create_group(self, group_name: str, description: str = "") -> CloudGroup:
        response = self.call(lambda: self.iam.create_group(GroupName=group_name))
        group = self._to_group(response["Group"])
        group.description = description
        return group

    def delete_group(self, group_id: str) -> None:
        for policy in self.get_group_policies(group_id):
            self.detach_group_policy(group_id, policy.policy_id)
        for user_name in self.list_group_users(group_id):
            self.remove_user_from_group(group_id, user_name)
        self.call(lambda: self.iam.delete_group(GroupName=group_id))

    def list_group_users(self, group_id: str) -> List[str]:
        items = self._collect(lambda kw: self.iam.get_group(GroupName=group_id, **kw), "Users")
        return [u["UserName"] for u in items]

    def add_user_to_group(self, group_id: str, user_id: str) -> None:
        self.call(lambda: self.iam.add_user_to_group(GroupName=group_id, UserName=user_id))

    def remove_user_from_group(self, group_id: str, user_id: str) -> None:
        self.call(lambda: self.iam.remove_user_from_group(GroupName=group_id, UserName=user_id))

    def get_group_policies(self, group_id: str) -> List[PermissionPolicy]:
        items = self._collect(
            lambda kw: self.iam.list_attached_group_policies(GroupName=group_id, **kw), "AttachedPolicies"
        )
        return [self._to_policy(p, self._type_from_arn(p["PolicyArn"])) for p in items]

    def attach_group_policy(self, group_id: str, policy: PermissionPolicy) -> None:
        self.call(lambda: self.iam.attach_group_policy(GroupName=group_id, PolicyArn=policy.policy_id))

    def detach_group_policy(self, group_id: str, policy_id: str) -> None:
        self.call(lambda: self.iam.detach_group_policy(GroupName=group_id, PolicyArn=policy_id))
