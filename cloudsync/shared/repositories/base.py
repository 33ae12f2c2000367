"""Helpers shared by the PyDAL repositories."""

# flake8: noqa: E501

import datetime
from typing import Optional

from pydal import DAL


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


class BaseRepository:
    """Holds the write connection and an optional read connection."""

    table_name = ""

    def __init__(self, db: DAL, db_read: Optional[DAL] = None):
        """Initialize the repository.

        Args:
            db: PyDAL database instance (write connection)
            db_read: PyDAL database instance (read replica, defaults to db)
        """
        self.db = db
        self.db_read = db_read or db

    @property
    def table(self):
        return self.db[self.table_name]

    @property
    def read_table(self):
        return self.db_read[self.table_name]
