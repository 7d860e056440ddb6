"""
Shared test fixtures for the idmigrate tests.

Usage:
    from tests.fixtures import (
        ALICE_DN,
        ALICE_GUID,
        ALICE_STABLE_ID,
        FakeDirectoryConnection,
        FakeResolver,
        make_binding,
        make_user,
    )
"""

from tests.fixtures.directory import (
    ALICE_DN,
    ALICE_GUID,
    ALICE_STABLE_ID,
    BOB_DN,
    BOB_STABLE_ID,
    FakeDirectoryConnection,
    FakeResolver,
)
from tests.fixtures.records import SCOPE, dn_ref, id_ref, make_binding, make_user

__all__ = [
    "ALICE_DN",
    "ALICE_GUID",
    "ALICE_STABLE_ID",
    "BOB_DN",
    "BOB_STABLE_ID",
    "FakeDirectoryConnection",
    "FakeResolver",
    "SCOPE",
    "dn_ref",
    "id_ref",
    "make_binding",
    "make_user",
]
