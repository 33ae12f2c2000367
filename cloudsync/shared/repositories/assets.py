"""PyDAL persistence for asset instances."""

# flake8: noqa: E501

from typing import List, Optional

from cloudsync.shared.models.domain import Instance
from cloudsync.shared.repositories.base import BaseRepository, as_utc, utcnow


class InstanceRepository(BaseRepository):
    """Asset records keyed by (tenant_id, model_uid, asset_id)."""

    table_name = "instances"

    @staticmethod
    def _to_instance(row) -> Instance:
        return Instance(
            id=row.id,
            tenant_id=row.tenant_id,
            model_uid=row.model_uid,
            asset_id=row.asset_id,
            asset_name=row.asset_name or "",
            account_id=row.account_id,
            attributes=row.attributes or {},
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def upsert(self, instance: Instance) -> None:
        """Insert or update one asset. Repeating the call with the same input is a no-op."""
        t = self.table
        key = (
            (t.tenant_id == instance.tenant_id)
            & (t.model_uid == instance.model_uid)
            & (t.asset_id == instance.asset_id)
        )
        values = dict(
            asset_name=instance.asset_name,
            account_id=instance.account_id,
            region=instance.region,
            attributes=instance.attributes,
        )
        existing = self.db(key).select(t.id).first()
        if existing:
            self.db(t.id == existing.id).update(**values)
        else:
            self.table.insert(
                tenant_id=instance.tenant_id,
                model_uid=instance.model_uid,
                asset_id=instance.asset_id,
                created_at=utcnow(),
                **values,
            )
        self.db.commit()

    def delete_by_asset_ids(self, tenant_id: str, model_uid: str, asset_ids: List[str]) -> int:
        """Delete assets of one model by provider id.

        Returns:
            Number of records removed (ids already absent count as zero)
        """
        if not asset_ids:
            return 0
        t = self.table
        count = self.db(
            (t.tenant_id == tenant_id)
            & (t.model_uid == model_uid)
            & (t.asset_id.belongs(list(asset_ids)))
        ).delete()
        self.db.commit()
        return count

    def list_asset_ids_by_region(
        self, tenant_id: str, model_uid: str, account_id: int, region: str
    ) -> List[str]:
        t = self.table
        rows = self.db(
            (t.tenant_id == tenant_id)
            & (t.model_uid == model_uid)
            & (t.account_id == account_id)
            & (t.region == region)
        ).select(t.asset_id)
        return [r.asset_id for r in rows]

    def get(self, tenant_id: str, model_uid: str, asset_id: str) -> Optional[Instance]:
        t = self.read_table
        row = self.db_read(
            (t.tenant_id == tenant_id) & (t.model_uid == model_uid) & (t.asset_id == asset_id)
        ).select().first()
        return self._to_instance(row) if row else None

    def list(self, tenant_id: str, model_uid: Optional[str] = None, account_id: Optional[int] = None) -> List[Instance]:
        t = self.read_table
        query = t.tenant_id == tenant_id
        if model_uid:
            query &= t.model_uid == model_uid
        if account_id:
            query &= t.account_id == account_id
        return [self._to_instance(r) for r in self.db_read(query).select(orderby=t.id)]

    def count_by_account(self, tenant_id: str, account_id: int) -> int:
        t = self.read_table
        return self.db_read((t.tenant_id == tenant_id) & (t.account_id == account_id)).count()
