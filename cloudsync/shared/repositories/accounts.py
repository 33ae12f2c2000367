"""PyDAL lookup of cloud accounts."""

# flake8: noqa: E501

from datetime import datetime
from typing import List, Optional

from cloudsync.shared.errors import AccountNotFoundError
from cloudsync.shared.models.domain import AccountConfig, AccountStatus, CloudAccount
from cloudsync.shared.repositories.base import BaseRepository, as_utc


class CloudAccountRepository(BaseRepository):
    """Read access to cloud accounts plus sync bookkeeping."""

    table_name = "cloud_accounts"

    @staticmethod
    def _to_account(row) -> CloudAccount:
        return CloudAccount(
            id=row.id,
            name=row.name,
            provider=row.provider,
            environment=row.environment or "production",
            access_key_id=row.access_key_id or "",
            access_key_secret=row.access_key_secret or "",
            regions=list(row.regions or []),
            status=AccountStatus(row.status or AccountStatus.ACTIVE.value),
            config=AccountConfig.from_dict(row.config),
            tenant_id=row.tenant_id,
            last_sync_time=as_utc(row.last_sync_time),
            asset_count=row.asset_count or 0,
        )

    def create(self, account: CloudAccount) -> CloudAccount:
        account.id = self.table.insert(
            name=account.name,
            provider=account.provider,
            environment=account.environment,
            access_key_id=account.access_key_id,
            access_key_secret=account.access_key_secret,
            regions=account.regions,
            status=account.status.value,
            config={
                "enable_auto_sync": account.config.enable_auto_sync,
                "sync_interval": account.config.sync_interval,
                "supported_regions": account.config.supported_regions,
                "supported_asset_types": account.config.supported_asset_types,
            },
            tenant_id=account.tenant_id,
            last_sync_time=account.last_sync_time,
            asset_count=account.asset_count,
        )
        self.db.commit()
        return account

    def get_by_id(self, account_id: int) -> CloudAccount:
        """Fetch an account.

        Raises:
            AccountNotFoundError: If no account has this id
        """
        row = self.db_read(self.read_table.id == account_id).select().first()
        if row is None:
            raise AccountNotFoundError(f"cloud account {account_id} not found")
        return self._to_account(row)

    def list_active(self, provider: Optional[str] = None) -> List[CloudAccount]:
        t = self.read_table
        query = t.status == AccountStatus.ACTIVE.value
        if provider:
            query &= t.provider == provider
        return [self._to_account(r) for r in self.db_read(query).select(orderby=t.id)]

    def update_sync_time(self, account_id: int, sync_time: datetime, asset_count: Optional[int] = None) -> None:
        values = {"last_sync_time": sync_time}
        if asset_count is not None:
            values["asset_count"] = asset_count
        self.db(self.table.id == account_id).update(**values)
        self.db.commit()
