"""Primary and replica connections of the sync worker.

Task claims, transitions and every read that guards one go to the primary.
Task listing and status polling may be served by ``DATABASE_READ_URL``.
"""

# flake8: noqa: E501

from typing import Optional

from pydal import DAL

from cloudsync.shared.database.connection import create_db_connection
from cloudsync.worker.config.settings import settings
from cloudsync.worker.utils.logger import get_logger

logger = get_logger(__name__)


class DatabaseManager:
    """Owns the worker's PyDAL connections; ``write`` and ``read`` feed the repositories."""

    def __init__(
        self,
        primary_url: str,
        replica_url: Optional[str] = None,
        pool_size: int = 10,
        migrate: bool = False,
    ):
        """Open the connections.

        Args:
            primary_url: Database holding the sync task rows
            replica_url: Optional read replica; ignored when equal to ``primary_url``
            pool_size: Pool size of each connection
            migrate: Let PyDAL create the CloudSync tables on the primary
        """
        self._primary = create_db_connection(primary_url, pool_size=pool_size, migrate=migrate)
        self._replica = self._primary
        if replica_url and replica_url != primary_url:
            # Tables are owned by the primary
            self._replica = create_db_connection(
                replica_url, pool_size=pool_size, migrate=False, folder="/tmp/pydal/replica"
            )
        logger.info("database connected", migrate=migrate, read_replica=self.has_replica)

    @classmethod
    def from_settings(cls) -> "DatabaseManager":
        """Connect with the DATABASE_URL, DATABASE_READ_URL and DB_* settings."""
        return cls(
            primary_url=settings.database_url,
            replica_url=settings.database_read_url,
            pool_size=settings.db_pool_size,
            migrate=settings.db_migrate,
        )

    @property
    def read(self) -> DAL:
        return self._replica

    @property
    def write(self) -> DAL:
        return self._primary

    @property
    def has_replica(self) -> bool:
        return self._replica is not self._primary

    def close(self) -> None:
        self._primary.close()
        if self.has_replica:
            self._replica.close()
        logger.info("database connections closed")
