"""Diff-based reconciliation of one (tenant, kind, region) scope.

The engine lists the provider side, compares it with the asset ids stored
for the same account and region, deletes what vanished upstream and upserts
everything the provider reported. It never raises for per-record problems;
the returned count is always a best effort.
"""

# flake8: noqa: E501


import asyncio
from typing import Any, Dict, List, Optional

from cloudsync.shared.models.domain import CloudAccount
from cloudsync.shared.repositories import InstanceRepository
from cloudsync.worker.cloud.base import CloudAdapter, ResourceKind
from cloudsync.worker.metrics import assets_reconciled
from cloudsync.worker.sync.kinds import KIND_SPECS, ConvertContext, KindSpec
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


class ReconciliationEngine:
    """One engine for every resource kind; kinds differ only by KindSpec."""

    def __init__(self, instances: InstanceRepository, kind_specs: Optional[Dict[ResourceKind, KindSpec]] = None):
        """Initialize the engine.

        Args:
            instances: Asset persistence
            kind_specs: Kind registry (defaults to KIND_SPECS)
        """
        self.instances = instances
        self.kind_specs = kind_specs or KIND_SPECS

    async def fetch(
        self,
        adapter: CloudAdapter,
        kind: ResourceKind,
        region: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """List every provider record of a kind in a region.

        The listing runs in a worker thread; adapter calls block on network
        I/O and on the rate limiter.
        """
        capability = adapter.capability(kind)
        if filters:
            return await asyncio.to_thread(capability.list_instances_with_filter, region, filters)
        return await asyncio.to_thread(capability.list_instances, region)

    async def reconcile(
        self,
        tenant_id: str,
        account: CloudAccount,
        adapter: CloudAdapter,
        kind: ResourceKind,
        region: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Reconcile one scope and return the number of records synced.

        Args:
            tenant_id: Tenant owning the assets
            account: Account whose assets are reconciled
            adapter: Adapter for the account
            kind: Resource kind
            region: Region to reconcile
            filters: Optional provider-side filter

        Returns:
            Count of records upserted successfully

        Raises:
            UnsupportedCapabilityError: If the provider does not offer ``kind``
            CloudError: If the provider listing fails
        """
        spec = self.kind_specs[kind]
        model = spec.model_uid(account.provider)
        log = logger.bind(
            tenant_id=tenant_id,
            account_id=account.id,
            provider=account.provider,
            kind=kind.value,
            region=region,
        )

        records = await self.fetch(adapter, kind, region, filters)

        cloud_ids = set()
        for record in records:
            cloud_ids.add(spec.key(record))

        local_ids = self.instances.list_asset_ids_by_region(tenant_id, model, account.id, region)

        # A filtered listing is partial, so nothing can be inferred as gone
        to_delete = [] if filters else sorted(set(local_ids) - cloud_ids)
        if to_delete:
            try:
                deleted = self.instances.delete_by_asset_ids(tenant_id, model, to_delete)
                log.info("stale assets deleted", deleted=deleted, asset_ids=to_delete)
            except Exception as e:
                log.error("failed to delete stale assets", asset_ids=to_delete, error=str(e))

        ctx = ConvertContext(tenant_id=tenant_id, account_id=account.id, provider=account.provider, region=region)
        synced = 0
        for record in records:
            try:
                self.instances.upsert(spec.convert(record, ctx))
                synced += 1
            except Exception as e:
                log.warning("failed to upsert asset, skipping", asset_id=spec.key(record), error=str(e))

        assets_reconciled.labels(provider=account.provider, kind=kind.value).inc(synced)
        log.info(
            "reconciliation finished",
            cloud_count=len(records),
            local_count=len(local_ids),
            deleted=len(to_delete),
            synced=synced,
        )
        return synced
