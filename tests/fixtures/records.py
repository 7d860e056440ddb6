"""
Factories for user and binding records.
"""

from __future__ import annotations

from typing import Any

from idmigrate.models import BindingKind, BindingRecord, UserRecord

SCOPE = "openldap_user"


def dn_ref(dn: str) -> str:
    return f"{SCOPE}://{dn}"


def id_ref(stable_id: str) -> str:
    return f"{SCOPE}://id={stable_id}"


def make_user(name: str, *principal_ids: str, **fields: Any) -> UserRecord:
    """Create a user record carrying the given references."""
    return UserRecord(name=name, principal_ids=list(principal_ids), **fields)


def make_binding(
    kind: BindingKind,
    principal: str,
    role_template: str = "cluster-member",
    target: str = "c-local",
    namespace: str = "",
    name: str = "",
) -> BindingRecord:
    """
    Create a binding record.

    Project bindings default their namespace to the target when none is given.
    """
    if kind is BindingKind.PROJECT and not namespace:
        namespace = target
    return BindingRecord(
        kind=kind,
        name=name,
        namespace=namespace,
        principal=principal,
        role_template=role_template,
        target=target,
    )
