"""Reconciliation engine, sync task state machine, executor and propagation."""

# flake8: noqa: E501


from cloudsync.worker.sync.executor import TaskExecutor
from cloudsync.worker.sync.kinds import KIND_SPECS, KindSpec, expand_asset_types, model_uid
from cloudsync.worker.sync.propagation import PermissionGroupService
from cloudsync.worker.sync.queue import TaskQueue
from cloudsync.worker.sync.reconciler import ReconciliationEngine
from cloudsync.worker.sync.routines import SyncRoutines
from cloudsync.worker.sync.scheduler import AutoSyncScheduler, SweepScheduler
from cloudsync.worker.sync.service import SyncService
from cloudsync.worker.sync.tasks import SyncTaskService
from cloudsync.worker.sync.users import UserSyncService

__all__ = [
    "AutoSyncScheduler",
    "KIND_SPECS",
    "KindSpec",
    "PermissionGroupService",
    "ReconciliationEngine",
    "SweepScheduler",
    "SyncRoutines",
    "SyncService",
    "SyncTaskService",
    "TaskExecutor",
    "TaskQueue",
    "UserSyncService",
    "expand_asset_types",
    "model_uid",
]
