"""Database connection management."""

from cloudsync.shared.database.connection import create_db_connection
from cloudsync.shared.database.manager import DatabaseManager

__all__ = ["create_db_connection", "DatabaseManager"]
