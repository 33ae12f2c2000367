"""
Unit tests for permission group edits and their propagation.

Tests policy validation, the audit trail, and that propagation creates one
permission-sync task per (affected user, platform) and nothing else.
"""

from unittest.mock import MagicMock

import pytest

from cloudsync.shared.errors import PermissionGroupNotFoundError, ValidationError
from cloudsync.shared.models.domain import (
    PermissionGroup,
    PermissionPolicy,
    SyncTargetType,
    SyncTaskFilter,
    SyncTaskStatus,
    SyncTaskType,
    UserStatus,
)
from cloudsync.worker.sync.propagation import PermissionGroupService, validate_policies
from cloudsync.worker.sync.tasks import SyncTaskService
from tests.fakes import TENANT, cloud_user


def policy(policy_id, provider="aws", **overrides):
    return PermissionPolicy(policy_id=policy_id, policy_name=policy_id, provider=provider, **overrides)


@pytest.fixture
def tasks(task_repo):
    return SyncTaskService(task_repo)


@pytest.fixture
def queue():
    return MagicMock()


@pytest.fixture
def service(group_repo, user_repo, audit_repo, tasks, queue):
    return PermissionGroupService(group_repo, user_repo, audit_repo, tasks, queue=queue)


@pytest.fixture
def group(group_repo):
    return group_repo.create(
        PermissionGroup(
            name="ops",
            tenant_id=TENANT,
            policies=[policy("OLD")],
            cloud_platforms=["aws", "aliyun"],
        )
    )


@pytest.fixture
def members(user_repo, group):
    """U1 and U2 in the group, U3 outside it, U4 in it but deleted."""
    u1 = user_repo.create(cloud_user("u1", 1, permission_groups=[group.id]))
    u2 = user_repo.create(cloud_user("u2", 2, permission_groups=[group.id, 77]))
    u3 = user_repo.create(cloud_user("u3", 1, permission_groups=[77]))
    u4 = user_repo.create(cloud_user("u4", 1, permission_groups=[group.id], status=UserStatus.DELETED))
    return u1, u2, u3, u4


class TestValidatePolicies:
    """Test validate_policies."""

    def test_valid_set(self):
        validate_policies([policy("A"), policy("A", "aliyun"), policy("B", policy_type="custom")])

    @pytest.mark.parametrize(
        "policies,message",
        [
            ([], "must not be empty"),
            ([policy("")], "policy_id is required"),
            ([PermissionPolicy(policy_id="A", policy_name="", provider="aws")], "policy_name is required"),
            ([policy("A", provider="")], "provider is required"),
            ([policy("A", provider="gcp")], "unsupported provider"),
            ([policy("A", policy_type="managed")], "invalid policy_type"),
            ([policy("A"), policy("A")], "duplicate policy"),
        ],
    )
    def test_invalid_sets(self, policies, message):
        with pytest.raises(ValidationError, match=message):
            validate_policies(policies)


class TestUpdatePolicies:
    """Test PermissionGroupService.update_policies."""

    def test_creates_one_task_per_member_and_platform(self, service, group, members, queue):
        """Test that exactly U1 and U2 get tasks, one per targeted platform."""
        u1, u2, u3, u4 = members

        created = service.update_policies(group.id, [policy("NEW")], operator="alice")

        assert sorted((t.target_id, t.provider) for t in created) == sorted(
            [(u1.id, "aws"), (u1.id, "aliyun"), (u2.id, "aws"), (u2.id, "aliyun")]
        )
        assert not any(t.target_id in (u3.id, u4.id) for t in created)
        for task in created:
            assert task.task_type == SyncTaskType.PERMISSION_SYNC
            assert task.target_type == SyncTargetType.USER
            assert task.status == SyncTaskStatus.PENDING
        assert {t.cloud_account_id for t in created if t.target_id == u2.id} == {2}
        assert queue.try_submit.call_count == 4

    def test_persists_policies_and_audits(self, service, group, group_repo, audit_repo):
        service.update_policies(group.id, [policy("NEW"), policy("X", "aliyun")], operator="alice")

        stored = group_repo.get_by_id(group.id)
        assert [(p.policy_id, p.provider) for p in stored.policies] == [("NEW", "aws"), ("X", "aliyun")]
        logs = audit_repo.list_for_target("group", group.id)
        assert len(logs) == 1
        assert logs[0].operator == "alice"
        assert [p["policy_id"] for p in logs[0].before] == ["OLD"]
        assert [p["policy_id"] for p in logs[0].after] == ["NEW", "X"]

    def test_group_without_members_creates_nothing(self, service, group, task_repo):
        assert service.update_policies(group.id, [policy("NEW")]) == []
        assert task_repo.list(SyncTaskFilter())[1] == 0

    def test_unknown_group_raises(self, service):
        with pytest.raises(PermissionGroupNotFoundError):
            service.update_policies(999, [policy("NEW")])

    def test_invalid_policies_leave_group_unchanged(self, service, group, group_repo, members):
        with pytest.raises(ValidationError):
            service.update_policies(group.id, [])

        assert [p.policy_id for p in group_repo.get_by_id(group.id).policies] == ["OLD"]

    def test_audit_failure_does_not_block_propagation(self, service, group, members, mocker):
        mocker.patch.object(service.audit, "create", side_effect=RuntimeError("audit store down"))

        created = service.update_policies(group.id, [policy("NEW")])

        assert len(created) == 4

    def test_task_creation_failure_is_skipped(self, service, group, members, mocker):
        """Test that one failing task does not stop the rest."""
        u1 = members[0]
        original = service.tasks.create_sync_task

        def flaky_create(request):
            if request.target_id == u1.id and request.provider == "aws":
                raise RuntimeError("insert failed")
            return original(request)

        mocker.patch.object(service.tasks, "create_sync_task", side_effect=flaky_create)

        created = service.update_policies(group.id, [policy("NEW")])

        assert len(created) == 3
        assert (u1.id, "aws") not in {(t.target_id, t.provider) for t in created}

    def test_scan_is_bounded_by_page_size(self, group_repo, user_repo, audit_repo, tasks, group, members):
        """Test that only the first page of tenant users is scanned."""
        service = PermissionGroupService(group_repo, user_repo, audit_repo, tasks, page_size=1)

        created = service.update_policies(group.id, [policy("NEW")])

        assert {t.target_id for t in created} == {members[0].id}


class TestSyncPermissionChanges:
    """Test PermissionGroupService.sync_permission_changes."""

    def test_empty_user_list_rejected(self, service, group):
        with pytest.raises(ValidationError):
            service.sync_permission_changes(group.id, [])

    def test_only_loadable_members_get_tasks(self, service, group, members):
        u1, _, u3, _ = members

        created = service.sync_permission_changes(group.id, [u1.id, u3.id, 999])

        assert sorted(t.provider for t in created) == ["aliyun", "aws"]
        assert {t.target_id for t in created} == {u1.id}

    def test_unknown_group_raises(self, service, members):
        with pytest.raises(PermissionGroupNotFoundError):
            service.sync_permission_changes(999, [members[0].id])
