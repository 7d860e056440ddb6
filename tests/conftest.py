"""
Shared pytest fixtures for the idmigrate tests.

This module provides:
- Principal scheme and directory settings fixtures
- In-memory registry fixtures (users, cluster and project bindings, config)
- Directory fixtures (fake ldap3 connection, dictionary resolver)
- SQLite engine fixture with the registry schema created
- MockTracer fixture for span assertions
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from idmigrate.directory import DirectorySettings
from idmigrate.models import BindingKind
from idmigrate.observability import MockTracer
from idmigrate.principal import PrincipalScheme
from idmigrate.registry import (
    InMemoryBindingRegistry,
    InMemoryConfigStore,
    InMemoryUserRegistry,
    create_schema,
)
from tests.fixtures import (
    ALICE_DN,
    ALICE_GUID,
    ALICE_STABLE_ID,
    BOB_DN,
    BOB_STABLE_ID,
    SCOPE,
    FakeDirectoryConnection,
    FakeResolver,
)


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry delays instead of sleeping."""
    delays: list[float] = []
    monkeypatch.setattr("idmigrate.retry.time.sleep", delays.append)
    return delays


@pytest.fixture
def scheme() -> PrincipalScheme:
    return PrincipalScheme(SCOPE)


@pytest.fixture
def directory_settings() -> DirectorySettings:
    return DirectorySettings(
        servers=("ldap.example.org",),
        service_account_dn="cn=admin,dc=example,dc=org",
        service_account_password="secret",
        user_search_base="ou=users,dc=example,dc=org",
    )


@pytest.fixture
def directory_connection() -> FakeDirectoryConnection:
    """Fake connection holding alice (objectGUID) and bob (entryUUID)."""
    connection = FakeDirectoryConnection()
    connection.add_entry(ALICE_DN, object_guid=ALICE_GUID)
    connection.add_entry(BOB_DN, entry_uuid=BOB_STABLE_ID)
    return connection


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver({ALICE_DN: ALICE_STABLE_ID, BOB_DN: BOB_STABLE_ID})


@pytest.fixture
def user_registry() -> InMemoryUserRegistry:
    return InMemoryUserRegistry()


@pytest.fixture
def cluster_registry() -> InMemoryBindingRegistry:
    return InMemoryBindingRegistry(BindingKind.CLUSTER)


@pytest.fixture
def project_registry() -> InMemoryBindingRegistry:
    return InMemoryBindingRegistry(BindingKind.PROJECT)


@pytest.fixture
def config_store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    """In-memory SQLite engine shared across connections, schema created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(engine)
    yield engine
    engine.dispose()
