"""
Basic Usage Example

This example walks through one migrate and one rollback run:
- Decoding a binary objectGUID into a stable identifier
- Seeding in-memory user and binding registries
- Running check, migrate and rollback with the orchestrator

The directory is replaced by a small dictionary resolver so the example
runs without an LDAP server; in production use DirectoryResolver with a
connection from open_connection().

Run with: python examples/basic_usage.py
"""

import logging

from idmigrate import (
    BindingKind,
    BindingRecord,
    InMemoryBindingRegistry,
    InMemoryConfigStore,
    InMemoryUserRegistry,
    MigrationAction,
    MigrationConfiguration,
    MigrationOrchestrator,
    PrincipalScheme,
    UserRecord,
    codec,
    save_configuration,
)

# =============================================================================
# Step 1: A directory stand-in
# =============================================================================
# Active Directory stores objectGUID as 16 little-endian-mixed bytes.

ALICE_DN = "cn=alice,ou=users,dc=example,dc=org"
ALICE_GUID = bytes.fromhex("aff60e3d5b96e3448feab23a7d3aa6cb")


class DictionaryResolver:
    """Resolves DNs from a fixed mapping."""

    def __init__(self, ids_by_dn: dict[str, str]) -> None:
        self.ids_by_dn = ids_by_dn

    def resolve_stable_id(self, dn: str) -> str:
        return self.ids_by_dn[dn]

    def find_dn(self, stable_id: str) -> str:
        return next(dn for dn, value in self.ids_by_dn.items() if value == stable_id)


def show(title: str, users, cluster_bindings, project_bindings) -> None:
    print(f"\n{title}")
    for user in users.list():
        print(f"   user {user.name}: {user.principal_ids}")
    for binding in [*cluster_bindings.list(), *project_bindings.list()]:
        print(f"   {binding.kind.value} binding {binding.name}: {binding.principal}")


def main() -> None:
    logging.basicConfig(level=logging.WARNING)

    print("=" * 60)
    print("Principal Migration Basic Usage Example")
    print("=" * 60)

    # =========================================================================
    # Step 2: Decode the directory identifier
    # =========================================================================
    stable_id = codec.parse(ALICE_GUID)
    print(f"\n1. objectGUID {ALICE_GUID.hex()} is stable ID {stable_id}")
    print(f"   LDAP filter escape: {codec.escape(ALICE_GUID)}")

    # =========================================================================
    # Step 3: Seed the registries
    # =========================================================================
    scheme = PrincipalScheme("openldap_user")
    users = InMemoryUserRegistry(
        [
            UserRecord(
                name="u-alice",
                display_name="Alice",
                principal_ids=[scheme.dn_reference(ALICE_DN), "local://u-alice"],
            )
        ]
    )
    cluster_bindings = InMemoryBindingRegistry(
        BindingKind.CLUSTER,
        [
            BindingRecord(
                kind=BindingKind.CLUSTER,
                principal=scheme.dn_reference(ALICE_DN),
                role_template="cluster-member",
                target="c-local",
            )
        ],
    )
    project_bindings = InMemoryBindingRegistry(
        BindingKind.PROJECT,
        [
            BindingRecord(
                kind=BindingKind.PROJECT,
                namespace="p-web",
                principal=scheme.dn_reference(ALICE_DN),
                role_template="project-owner",
                target="p-web",
            )
        ],
    )
    store = InMemoryConfigStore()
    orchestrator = MigrationOrchestrator(
        users=users,
        cluster_bindings=cluster_bindings,
        project_bindings=project_bindings,
        config_store=store,
        resolver=DictionaryResolver({ALICE_DN: stable_id}),
        scheme=scheme,
        enable_tracing=False,
    )
    show("2. Before", users, cluster_bindings, project_bindings)

    # =========================================================================
    # Step 4: check, migrate, rollback
    # =========================================================================
    for number, action in enumerate(
        [MigrationAction.CHECK, MigrationAction.MIGRATE, MigrationAction.ROLLBACK], start=3
    ):
        save_configuration(store, MigrationConfiguration(action=action))
        report = orchestrator.run()
        print(f"\n{number}. {action.value}")
        for line in report.lines():
            print(f"   {line}")
        if action is not MigrationAction.CHECK:
            show(f"   after {action.value}:", users, cluster_bindings, project_bindings)


if __name__ == "__main__":
    main()
