from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"

from compdb.database import Base  # noqa: E402
from compdb.apps.components import models as component_models  # noqa: E402
from compdb.apps.components.allocations import AllocationLedger  # noqa: E402
from compdb.apps.components.images import ImageResolver  # noqa: E402
from compdb.apps.components.services import ComponentGuard  # noqa: E402
from compdb.permissions import ALL_COMPONENT_PERMISSIONS, Actor, PermissionAuthorizer  # noqa: E402
from compdb.storage import BlobStoreError  # noqa: E402
from compdb.tenancy import TenantResolver  # noqa: E402

COMPONENT_TABLES = [
    component_models.Component.__table__,
    component_models.ComponentAllocation.__table__,
]


class FakeBlobStore:
    """In-memory blob store that can be told to fail."""

    def __init__(self):
        self.blobs = {}
        self.fail_stores = False
        self.fail_deletes = False

    def exists(self, key):
        if self.fail_deletes:
            raise BlobStoreError("blob store offline")
        return key in self.blobs

    def store(self, data, naming_policy, filename=None):
        if self.fail_stores:
            raise BlobStoreError("blob store offline")
        key = naming_policy(filename)
        self.blobs[key] = data
        return key

    def delete(self, key):
        if self.fail_deletes:
            raise BlobStoreError("blob store offline")
        return self.blobs.pop(key, None) is not None


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine, tables=COMPONENT_TABLES)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def blob_store():
    return FakeBlobStore()


@pytest.fixture()
def tenants():
    return TenantResolver(full_company_support=True)


@pytest.fixture()
def guard(tenants, blob_store):
    return ComponentGuard(
        authorizer=PermissionAuthorizer(tenants),
        tenants=tenants,
        images=ImageResolver(blob_store),
    )


@pytest.fixture()
def ledger(guard):
    return AllocationLedger(authorizer=guard.authorizer, tenants=guard.tenants)


@pytest.fixture()
def admin_a():
    return Actor(user_id="u-alice", company_id="co-a", permissions=ALL_COMPONENT_PERMISSIONS)


@pytest.fixture()
def admin_b():
    return Actor(user_id="u-bob", company_id="co-b", permissions=ALL_COMPONENT_PERMISSIONS)
