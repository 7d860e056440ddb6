"""
Registry protocols.

The user and binding registries are the authoritative stores of user and
role-binding records; the migration only reads them and asks them to
create, update or delete. The configuration store is a flat key/value
store holding the run configuration.

Implementations:
    - InMemoryUserRegistry / InMemoryBindingRegistry / InMemoryConfigStore
    - DatabaseUserRegistry / DatabaseBindingRegistry / DatabaseConfigStore

Error contract shared by all implementations:
    - RecordNotFoundError: get/delete/update of a record that does not exist
    - RegistryConflictError: update with a stale resource_version, or create
      of a name that already exists
    - RegistryUnavailableError: any other I/O failure
    - RecordDecodeError: a stored record fails typed decoding
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from idmigrate.models import BindingKind, BindingRecord, UserRecord


@runtime_checkable
class UserRegistry(Protocol):
    """Protocol for the user registry."""

    def list(self) -> list[UserRecord]:
        """
        List all users.

        The order is stable across calls for an unchanged registry, so that
        a run limited to N users selects the same N users each time.
        """
        ...

    def get(self, name: str) -> UserRecord:
        """
        Get a user by name.

        Raises:
            RecordNotFoundError: If the user does not exist
        """
        ...

    def create(self, user: UserRecord) -> UserRecord:
        """
        Create a user.

        Raises:
            RegistryConflictError: If a user with the same name exists
        """
        ...

    def update(self, user: UserRecord) -> UserRecord:
        """
        Replace a user, checking its resource_version.

        Args:
            user: The modified record, carrying the version it was read at

        Returns:
            The stored record with its new resource_version

        Raises:
            RecordNotFoundError: If the user does not exist
            RegistryConflictError: If the stored version differs
        """
        ...


@runtime_checkable
class BindingRegistry(Protocol):
    """Protocol for one kind of binding registry."""

    @property
    def kind(self) -> BindingKind:
        """The binding kind this registry holds."""
        ...

    def list(self, namespace: str | None = None) -> list[BindingRecord]:
        """List bindings, optionally restricted to one namespace."""
        ...

    def create(self, binding: BindingRecord) -> BindingRecord:
        """
        Create a binding.

        A binding without a name gets a fresh registry-assigned one.

        Returns:
            The stored binding, with name and resource_version set

        Raises:
            RegistryConflictError: If a binding with the same name exists
        """
        ...

    def delete(self, name: str) -> None:
        """
        Delete a binding by name.

        Raises:
            RecordNotFoundError: If the binding does not exist
        """
        ...


@runtime_checkable
class ConfigStore(Protocol):
    """Protocol for the flat key/value configuration store."""

    def get(self, name: str) -> dict[str, str]:
        """
        Get the fields of a stored record.

        Raises:
            RecordNotFoundError: If no record exists under ``name``
        """
        ...

    def create(self, name: str, fields: dict[str, str]) -> dict[str, str]:
        """
        Create a record.

        Raises:
            RegistryConflictError: If a record exists under ``name``
        """
        ...

    def update(self, name: str, fields: dict[str, str]) -> dict[str, str]:
        """
        Replace the fields of a record, creating it if absent.
        """
        ...


__all__ = [
    "BindingRegistry",
    "ConfigStore",
    "UserRegistry",
]
