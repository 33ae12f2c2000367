"""PyDAL connection factory."""

# flake8: noqa: E501


import os

from pydal import DAL

from cloudsync.shared.models.pydal_models import define_all_tables


def normalize_database_url(database_url: str) -> str:
    """Fix URL schemes PyDAL does not accept.

    PyDAL expects postgres:// rather than postgresql://.
    """
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgres://", 1)
    return database_url


def create_db_connection(
    database_url: str,
    pool_size: int = 10,
    migrate: bool = False,
    folder: str = "/tmp/pydal",
) -> DAL:
    """Open a PyDAL connection with every CloudSync table defined.

    Args:
        database_url: PyDAL URI (postgres://, mysql://, sqlite://...)
        pool_size: Connection pool size
        migrate: Whether PyDAL may create/alter tables
        folder: PyDAL metadata folder (migration .table files)

    Returns:
        Connected DAL instance
    """
    uri = normalize_database_url(database_url)
    if not uri.startswith("sqlite:memory"):
        os.makedirs(folder, exist_ok=True)

    db = DAL(
        uri,
        pool_size=pool_size,
        migrate=migrate,
        fake_migrate_all=False,
        folder=None if uri.startswith("sqlite:memory") else folder,
        lazy_tables=False,
    )
    define_all_tables(db, migrate=migrate)
    return db
