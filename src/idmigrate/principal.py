"""
Principal references.

A principal reference names a directory subject inside one identity
provider scope, in one of two shapes:

    <scope>://<DN>                 DN-keyed, e.g. openldap_user://cn=alice,dc=example,dc=org
    <scope>://<id_key>=<stable-id> ID-keyed, e.g. openldap_user://id=3d0ef6af-...

The scope is fixed for a run and is passed around as a ``PrincipalScheme``
rather than kept in a module-level constant.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from idmigrate.exceptions import ConfigurationError


class ReferenceKind(Enum):
    """Shape of a principal reference."""

    DN = "dn"
    """Keyed by distinguished name; changes when the entry is renamed or moved."""

    ID = "id"
    """Keyed by the directory-issued stable identifier."""


@dataclass(frozen=True)
class PrincipalReference:
    """
    A parsed principal reference.

    Attributes:
        raw: The reference string exactly as stored
        kind: Whether the reference is DN-keyed or ID-keyed
        value: The DN or the stable identifier, without scope or key prefix
    """

    raw: str
    kind: ReferenceKind
    value: str

    @property
    def is_dn(self) -> bool:
        return self.kind is ReferenceKind.DN

    @property
    def is_id(self) -> bool:
        return self.kind is ReferenceKind.ID


@dataclass(frozen=True)
class PrincipalScheme:
    """
    The managed scope and the key used by ID-keyed references.

    Example:
        >>> scheme = PrincipalScheme("openldap_user")
        >>> scheme.id_reference("3d0ef6af-965b-44e3-8fea-b23a7d3aa6cb")
        'openldap_user://id=3d0ef6af-965b-44e3-8fea-b23a7d3aa6cb'
        >>> scheme.parse("openldap_user://cn=alice,dc=example,dc=org").kind
        <ReferenceKind.DN: 'dn'>
    """

    scope: str
    id_key: str = "id"

    def __post_init__(self) -> None:
        if not self.scope or "://" in self.scope:
            raise ConfigurationError(f"Invalid principal scope: {self.scope!r}")
        if not self.id_key or "=" in self.id_key:
            raise ConfigurationError(f"Invalid principal id key: {self.id_key!r}")

    @property
    def prefix(self) -> str:
        """The ``<scope>://`` prefix shared by every managed reference."""
        return f"{self.scope}://"

    @property
    def id_prefix(self) -> str:
        return f"{self.prefix}{self.id_key}="

    def manages(self, reference: str) -> bool:
        """Check whether a reference belongs to this scope."""
        return reference.startswith(self.prefix)

    def parse(self, reference: str) -> PrincipalReference:
        """
        Parse a reference that belongs to this scope.

        Args:
            reference: Full reference string

        Returns:
            The parsed reference

        Raises:
            ValueError: If the reference is outside this scope or has no value
        """
        if not self.manages(reference):
            raise ValueError(f"Reference {reference!r} is not in scope {self.scope!r}")

        if reference.startswith(self.id_prefix):
            value = reference[len(self.id_prefix) :]
            kind = ReferenceKind.ID
        else:
            value = reference[len(self.prefix) :]
            kind = ReferenceKind.DN

        if not value:
            raise ValueError(f"Reference {reference!r} has an empty value")
        return PrincipalReference(raw=reference, kind=kind, value=value)

    def dn_reference(self, dn: str) -> str:
        return f"{self.prefix}{dn}"

    def id_reference(self, stable_id: str) -> str:
        return f"{self.id_prefix}{stable_id}"


__all__ = [
    "PrincipalReference",
    "PrincipalScheme",
    "ReferenceKind",
]
