"""
Behavior shared by every registry backend.

Each test runs against the in-memory and the SQLite-backed implementation.

Tests cover:
- User listing order, get, create and optimistic update
- Binding create with registry-assigned names, namespace filtering, delete
- Configuration store get/create/update
"""

import pytest

from idmigrate.exceptions import RecordNotFoundError, RegistryConflictError
from idmigrate.models import BindingKind
from idmigrate.registry import (
    BindingRegistry,
    ConfigStore,
    DatabaseBindingRegistry,
    DatabaseConfigStore,
    DatabaseUserRegistry,
    InMemoryBindingRegistry,
    InMemoryConfigStore,
    InMemoryUserRegistry,
    UserRegistry,
)
from tests.fixtures import ALICE_DN, dn_ref, make_binding, make_user


@pytest.fixture(params=["memory", "database"])
def backend(request, sqlite_engine):
    return request.param, sqlite_engine


@pytest.fixture
def users(backend) -> UserRegistry:
    kind, engine = backend
    if kind == "memory":
        return InMemoryUserRegistry()
    return DatabaseUserRegistry(engine, enable_tracing=False)


@pytest.fixture
def crtbs(backend) -> BindingRegistry:
    kind, engine = backend
    if kind == "memory":
        return InMemoryBindingRegistry(BindingKind.CLUSTER)
    return DatabaseBindingRegistry(engine, BindingKind.CLUSTER, enable_tracing=False)


@pytest.fixture
def prtbs(backend) -> BindingRegistry:
    kind, engine = backend
    if kind == "memory":
        return InMemoryBindingRegistry(BindingKind.PROJECT)
    return DatabaseBindingRegistry(engine, BindingKind.PROJECT, enable_tracing=False)


@pytest.fixture
def store(backend) -> ConfigStore:
    kind, engine = backend
    if kind == "memory":
        return InMemoryConfigStore()
    return DatabaseConfigStore(engine, enable_tracing=False)


class TestUserRegistry:
    """Tests for user registries."""

    def test_satisfies_protocol(self, users):
        assert isinstance(users, UserRegistry)

    def test_create_sets_first_version(self, users):
        created = users.create(make_user("u-alice", dn_ref(ALICE_DN)))

        assert created.resource_version == 1
        assert users.get("u-alice").principal_ids == [dn_ref(ALICE_DN)]

    def test_list_keeps_insertion_order(self, users):
        for name in ["u-carol", "u-alice", "u-bob"]:
            users.create(make_user(name))

        assert [u.name for u in users.list()] == ["u-carol", "u-alice", "u-bob"]
        assert [u.name for u in users.list()] == ["u-carol", "u-alice", "u-bob"]

    def test_duplicate_create_conflicts(self, users):
        users.create(make_user("u-alice"))

        with pytest.raises(RegistryConflictError):
            users.create(make_user("u-alice"))

    def test_get_missing_user(self, users):
        with pytest.raises(RecordNotFoundError):
            users.get("u-nobody")

    def test_update_bumps_version(self, users):
        users.create(make_user("u-alice", "local://u-alice"))
        user = users.get("u-alice")

        updated = users.update(
            user.model_copy(update={"principal_ids": ["openldap_user://id=x"]})
        )

        assert updated.resource_version == 2
        assert users.get("u-alice").principal_ids == ["openldap_user://id=x"]
        assert users.get("u-alice").resource_version == 2

    def test_stale_update_conflicts(self, users):
        users.create(make_user("u-alice"))
        first = users.get("u-alice")
        second = users.get("u-alice")
        users.update(first.model_copy(update={"display_name": "Alice"}))

        with pytest.raises(RegistryConflictError):
            users.update(second.model_copy(update={"display_name": "Mallory"}))

        assert users.get("u-alice").display_name == "Alice"

    def test_update_missing_user(self, users):
        with pytest.raises(RecordNotFoundError):
            users.update(make_user("u-nobody"))

    def test_unknown_fields_pass_through(self, users):
        """Fields the migration does not know about survive an update."""
        users.create(make_user("u-alice", enabled=True, description="ops"))
        user = users.get("u-alice")
        users.update(user.model_copy(update={"principal_ids": ["local://u-alice"]}))

        stored = users.get("u-alice")
        assert stored.model_extra == {"enabled": True, "description": "ops"}

    def test_returned_records_are_copies(self, users):
        users.create(make_user("u-alice", "local://u-alice"))

        users.get("u-alice").principal_ids.append("local://mallory")

        assert users.get("u-alice").principal_ids == ["local://u-alice"]


class TestBindingRegistry:
    """Tests for binding registries."""

    def test_satisfies_protocol(self, crtbs):
        assert isinstance(crtbs, BindingRegistry)
        assert crtbs.kind is BindingKind.CLUSTER

    def test_create_assigns_prefixed_name(self, crtbs, prtbs):
        crtb = crtbs.create(make_binding(BindingKind.CLUSTER, dn_ref(ALICE_DN)))
        prtb = prtbs.create(make_binding(BindingKind.PROJECT, dn_ref(ALICE_DN), target="p-web"))

        assert crtb.name.startswith("crtb-")
        assert prtb.name.startswith("prtb-")
        assert crtb.resource_version == 1

    def test_create_keeps_given_name(self, crtbs):
        created = crtbs.create(make_binding(BindingKind.CLUSTER, dn_ref(ALICE_DN), name="crtb-a"))
        assert created.name == "crtb-a"

    def test_duplicate_name_conflicts(self, crtbs):
        crtbs.create(make_binding(BindingKind.CLUSTER, dn_ref(ALICE_DN), name="crtb-a"))

        with pytest.raises(RegistryConflictError):
            crtbs.create(make_binding(BindingKind.CLUSTER, dn_ref(ALICE_DN), name="crtb-a"))

    def test_rejects_other_kind(self, crtbs):
        with pytest.raises(ValueError):
            crtbs.create(make_binding(BindingKind.PROJECT, dn_ref(ALICE_DN)))

    def test_list_filters_namespace(self, prtbs):
        prtbs.create(make_binding(BindingKind.PROJECT, dn_ref(ALICE_DN), target="p-web"))
        prtbs.create(make_binding(BindingKind.PROJECT, dn_ref(ALICE_DN), target="p-db"))

        assert [b.target for b in prtbs.list()] == ["p-web", "p-db"]
        assert [b.target for b in prtbs.list(namespace="p-db")] == ["p-db"]

    def test_kinds_are_independent(self, crtbs, prtbs):
        crtbs.create(make_binding(BindingKind.CLUSTER, dn_ref(ALICE_DN)))

        assert prtbs.list() == []

    def test_delete(self, crtbs):
        created = crtbs.create(make_binding(BindingKind.CLUSTER, dn_ref(ALICE_DN)))

        crtbs.delete(created.name)

        assert crtbs.list() == []

    def test_delete_missing(self, crtbs):
        with pytest.raises(RecordNotFoundError):
            crtbs.delete("crtb-missing")


class TestConfigStore:
    """Tests for configuration stores."""

    def test_get_missing(self, store):
        with pytest.raises(RecordNotFoundError):
            store.get("idmigration-config")

    def test_create_and_get(self, store):
        store.create("idmigration-config", {"enabled": "true", "limit": "10"})

        assert store.get("idmigration-config") == {"enabled": "true", "limit": "10"}

    def test_duplicate_create_conflicts(self, store):
        store.create("idmigration-config", {})

        with pytest.raises(RegistryConflictError):
            store.create("idmigration-config", {})

    def test_update_replaces_fields(self, store):
        store.create("idmigration-config", {"enabled": "true", "limit": "10"})

        store.update("idmigration-config", {"enabled": "false"})

        assert store.get("idmigration-config") == {"enabled": "false"}

    def test_update_creates_missing_record(self, store):
        store.update("idmigration-config", {"status": "done"})

        assert store.get("idmigration-config") == {"status": "done"}
