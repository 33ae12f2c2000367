"""
Integration tests for the end-to-end sync flows.

The whole engine is wired over the in-memory database with the fake provider
registered as ``aws``: group edits propagate into permission-sync tasks, the
queue and sweeps execute them, and the provider-side state is checked.
"""

from datetime import timedelta

import pytest

from cloudsync.shared.errors import ThrottlingError
from cloudsync.shared.models.domain import (
    PermissionGroup,
    PermissionPolicy,
    SyncTaskStatus,
)
from cloudsync.shared.repositories.base import utcnow
from cloudsync.worker.cloud.base import ResourceKind
from tests.fakes import TENANT, cloud_user, compute

pytestmark = pytest.mark.integration


def policy(policy_id):
    return PermissionPolicy(policy_id=policy_id, policy_name=policy_id, provider="aws")


@pytest.fixture
def provider(sync_service, account):
    return sync_service.factory.create_adapter(account)


@pytest.fixture
def groups(group_repo):
    ops = group_repo.create(
        PermissionGroup(name="ops", tenant_id=TENANT, policies=[policy("P1")], cloud_platforms=["aws"])
    )
    dev = group_repo.create(
        PermissionGroup(name="dev", tenant_id=TENANT, policies=[policy("P3")], cloud_platforms=["aws"])
    )
    return ops, dev


@pytest.fixture
def users(user_repo, account, groups):
    ops, dev = groups
    u1 = user_repo.create(cloud_user("u1", account.id, permission_groups=[ops.id, dev.id]))
    u3 = user_repo.create(cloud_user("u3", account.id, permission_groups=[dev.id]))
    return u1, u3


class TestPermissionPropagation:
    """Test group edits through to provider-side policies."""

    @pytest.mark.asyncio
    async def test_group_edit_reaches_provider(self, sync_service, provider, groups, users):
        """Test that members end with the union of their groups and others are untouched."""
        ops, _ = groups
        provider.user_policies["u1"] = {"P1", "STALE"}
        provider.user_policies["u3"] = {"P3"}

        created = sync_service.update_policies(ops.id, [policy("P1"), policy("P2")], operator="alice")
        executed = await sync_service.process_pending_tasks(10)

        assert len(created) == 1
        assert executed == 1
        assert provider.user_policies["u1"] == {"P1", "P2", "P3"}
        assert provider.user_policies["u3"] == {"P3"}
        task = sync_service.get_sync_task_status(created[0].id)
        assert task.status == SyncTaskStatus.SUCCESS
        assert task.progress == 100
        assert task.result["attached"] == ["P2", "P3"]
        assert task.result["detached"] == ["STALE"]

    @pytest.mark.asyncio
    async def test_failed_task_is_retried_by_the_sweep(self, sync_service, provider, groups, users, db, mocker):
        ops, _ = groups
        original = provider.identity.update_user_permissions
        calls = []

        def flaky(user_id, policies):
            calls.append(user_id)
            if len(calls) == 1:
                raise ThrottlingError("slow down", provider="aws")
            return original(user_id, policies)

        mocker.patch.object(provider.identity, "update_user_permissions", side_effect=flaky)

        task = sync_service.update_policies(ops.id, [policy("P2")])[0]
        await sync_service.process_pending_tasks(10)

        failed = sync_service.get_sync_task_status(task.id)
        assert failed.status == SyncTaskStatus.FAILED
        assert failed.error_message == "slow down"

        # Nothing is retried inside the backoff window
        assert await sync_service.process_failed_tasks() == 0

        db(db.sync_tasks.id == task.id).update(end_time=utcnow() - timedelta(minutes=5))
        db.commit()
        assert await sync_service.process_failed_tasks() == 1

        retried = sync_service.get_sync_task_status(task.id)
        assert retried.status == SyncTaskStatus.SUCCESS
        assert retried.retry_count == 1
        assert provider.user_policies["u1"] == {"P2", "P3"}


class TestQueuedSync:
    """Test tasks dispatched through the running queue."""

    @pytest.mark.asyncio
    async def test_account_sync_through_queue(self, sync_service, provider, account, account_repo, instance_repo):
        provider.records[(ResourceKind.COMPUTE, "us-east-1")] = [compute("i-1"), compute("i-2"), compute("i-3")]
        provider.users["alice"] = cloud_user("alice", account.id)

        await sync_service.queue.start()
        try:
            task = sync_service.create_sync_task(
                {
                    "task_type": "batch_user_sync",
                    "target_type": "account",
                    "target_id": account.id,
                    "cloud_account_id": account.id,
                    "provider": "aws",
                    "params": {"regions": ["us-east-1"], "asset_types": ["ecs"]},
                },
                dispatch=True,
            )
            await sync_service.queue.join()
        finally:
            await sync_service.queue.stop()

        done = sync_service.get_sync_task_status(task.id)
        assert done.status == SyncTaskStatus.SUCCESS
        assert sorted(i.asset_id for i in instance_repo.list(TENANT, "aws_ecs", account.id)) == ["i-1", "i-2", "i-3"]
        assert done.result["users"]["added"] == 1
        refreshed = account_repo.get_by_id(account.id)
        assert refreshed.last_sync_time is not None

    @pytest.mark.asyncio
    async def test_users_only_sync_through_queue(self, sync_service, provider, account, user_repo):
        provider.users["alice"] = cloud_user("alice", account.id)

        await sync_service.queue.start()
        try:
            task = sync_service.sync_users_async(account.id)
            await sync_service.queue.join()
        finally:
            await sync_service.queue.stop()

        done = sync_service.get_sync_task_status(task.id)
        assert done.status == SyncTaskStatus.SUCCESS
        assert [u.username for u in user_repo.list_by_account(account.id)] == ["alice"]
        assert "steps" not in done.result or done.result["steps"] == []
