"""
In-memory registry implementations.

Useful for tests, dry runs against exported data, and as the reference
behavior for other backends. Records are deep-copied on the way in and
out so callers never share state with the registry. Listing order is
insertion order.
"""

from __future__ import annotations

import threading
import uuid

from idmigrate.exceptions import RecordNotFoundError, RegistryConflictError
from idmigrate.models import BindingKind, BindingRecord, UserRecord


def generate_name(prefix: str) -> str:
    """Generate a registry-assigned record name, e.g. ``crtb-5f3a9c1e``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class InMemoryUserRegistry:
    """
    In-memory user registry with optimistic concurrency.

    Example:
        >>> registry = InMemoryUserRegistry()
        >>> alice = UserRecord(name="u-alice", principal_ids=["openldap_user://cn=alice"])
        >>> _ = registry.create(alice)
        >>> user = registry.get("u-alice")
        >>> user.principal_ids.append("local://u-alice")
        >>> registry.update(user).resource_version
        2
    """

    def __init__(self, users: list[UserRecord] | None = None) -> None:
        self._users: dict[str, UserRecord] = {}
        self._lock = threading.Lock()
        for user in users or []:
            self.create(user)

    def list(self) -> list[UserRecord]:
        with self._lock:
            return [user.model_copy(deep=True) for user in self._users.values()]

    def get(self, name: str) -> UserRecord:
        with self._lock:
            user = self._users.get(name)
            if user is None:
                raise RecordNotFoundError("user", name)
            return user.model_copy(deep=True)

    def create(self, user: UserRecord) -> UserRecord:
        with self._lock:
            if user.name in self._users:
                raise RegistryConflictError("user", user.name, f"user already exists: {user.name}")
            stored = user.model_copy(update={"resource_version": 1}, deep=True)
            self._users[user.name] = stored
            return stored.model_copy(deep=True)

    def update(self, user: UserRecord) -> UserRecord:
        with self._lock:
            current = self._users.get(user.name)
            if current is None:
                raise RecordNotFoundError("user", user.name)
            if current.resource_version != user.resource_version:
                raise RegistryConflictError("user", user.name)
            stored = user.model_copy(
                update={"resource_version": current.resource_version + 1},
                deep=True,
            )
            self._users[user.name] = stored
            return stored.model_copy(deep=True)


class InMemoryBindingRegistry:
    """
    In-memory registry for one binding kind.

    Bindings created without a name get ``<prefix>-<random>`` names, the
    prefix being ``crtb`` for cluster and ``prtb`` for project bindings.
    """

    def __init__(self, kind: BindingKind, bindings: list[BindingRecord] | None = None) -> None:
        self._kind = kind
        self._bindings: dict[str, BindingRecord] = {}
        self._lock = threading.Lock()
        for binding in bindings or []:
            self.create(binding)

    @property
    def kind(self) -> BindingKind:
        return self._kind

    def list(self, namespace: str | None = None) -> list[BindingRecord]:
        with self._lock:
            return [
                binding.model_copy(deep=True)
                for binding in self._bindings.values()
                if namespace is None or binding.namespace == namespace
            ]

    def get(self, name: str) -> BindingRecord:
        with self._lock:
            binding = self._bindings.get(name)
            if binding is None:
                raise RecordNotFoundError(f"{self._kind.value} binding", name)
            return binding.model_copy(deep=True)

    def create(self, binding: BindingRecord) -> BindingRecord:
        if binding.kind is not self._kind:
            raise ValueError(
                f"Cannot store a {binding.kind.value} binding in the {self._kind.value} registry"
            )
        with self._lock:
            name = binding.name or generate_name(self._kind.name_prefix)
            if name in self._bindings:
                raise RegistryConflictError(
                    f"{self._kind.value} binding", name, f"binding already exists: {name}"
                )
            stored = binding.model_copy(update={"name": name, "resource_version": 1}, deep=True)
            self._bindings[name] = stored
            return stored.model_copy(deep=True)

    def delete(self, name: str) -> None:
        with self._lock:
            if name not in self._bindings:
                raise RecordNotFoundError(f"{self._kind.value} binding", name)
            del self._bindings[name]


class InMemoryConfigStore:
    """In-memory flat key/value configuration store."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> dict[str, str]:
        with self._lock:
            fields = self._records.get(name)
            if fields is None:
                raise RecordNotFoundError("configuration", name)
            return dict(fields)

    def create(self, name: str, fields: dict[str, str]) -> dict[str, str]:
        with self._lock:
            if name in self._records:
                raise RegistryConflictError(
                    "configuration", name, f"configuration already exists: {name}"
                )
            self._records[name] = dict(fields)
            return dict(fields)

    def update(self, name: str, fields: dict[str, str]) -> dict[str, str]:
        with self._lock:
            self._records[name] = dict(fields)
            return dict(fields)


__all__ = [
    "InMemoryBindingRegistry",
    "InMemoryConfigStore",
    "InMemoryUserRegistry",
    "generate_name",
]
