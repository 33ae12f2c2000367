"""Pytest configuration and fixtures for CloudSync tests.

Unit tests use mocks or the in-memory PyDAL database below; nothing here
talks to a real cloud provider. The fake provider lives in tests/fakes.py.
"""

import os

import pytest

# Set testing environment before any cloudsync imports
os.environ.setdefault("DATABASE_URL", "sqlite:memory")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("ADAPTER_RETRY_BASE_DELAY", "0")
os.environ.setdefault("ADAPTER_RETRY_MAX_DELAY", "0")

from pydal import DAL  # noqa: E402

from cloudsync.shared.models.pydal_models import define_all_tables  # noqa: E402
from cloudsync.shared.repositories import (  # noqa: E402
    AuditLogRepository,
    CloudAccountRepository,
    CloudUserRepository,
    InstanceRepository,
    PermissionGroupRepository,
    SyncTaskRepository,
)
from cloudsync.worker.cloud.factory import AdapterFactory  # noqa: E402
from cloudsync.worker.cloud.registry import AdapterRegistry  # noqa: E402
from tests.fakes import FakeAdapter, make_account  # noqa: E402


@pytest.fixture
def db():
    """In-memory PyDAL database with every table defined."""
    database = DAL("sqlite:memory")
    define_all_tables(database, migrate=True)
    yield database
    database.close()


@pytest.fixture
def task_repo(db):
    return SyncTaskRepository(db)


@pytest.fixture
def account_repo(db):
    return CloudAccountRepository(db)


@pytest.fixture
def user_repo(db):
    return CloudUserRepository(db)


@pytest.fixture
def group_repo(db):
    return PermissionGroupRepository(db)


@pytest.fixture
def audit_repo(db):
    return AuditLogRepository(db)


@pytest.fixture
def instance_repo(db):
    return InstanceRepository(db)


@pytest.fixture
def registry():
    """Registry with the fake provider registered as ``aws``."""
    reg = AdapterRegistry()
    reg.register("aws", FakeAdapter)
    return reg


@pytest.fixture
def factory(registry):
    return AdapterFactory(registry)


@pytest.fixture
def account(account_repo):
    """Active AWS account stored in the database."""
    return account_repo.create(make_account())


@pytest.fixture
def adapter(factory, account):
    """Cached fake adapter of ``account``."""
    return factory.create_adapter(account)


@pytest.fixture
def sync_service(db, registry):
    """Fully wired sync engine over the in-memory database."""
    from cloudsync.worker.sync.service import SyncService

    return SyncService.build(db, registry=registry, timeout=5)


# Markers for test categories
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (in-memory database, fake providers)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
