"""
Data models for the principal migration.

Registry records:
    - UserRecord: A user with its principal references
    - BindingRecord: A cluster- or project-scoped role grant
    - BindingKind: Which of the two binding registries a record belongs to

Run models:
    - UserContext: Per-reference join of user, identity and bindings, built fresh per run
    - UserFailure: A user whose context could not be built or resolved
    - MigrationReport: Outcome of one orchestrator run

Registry records are pydantic models so that anything read back from a
backing store goes through an explicit decode step that fails fast on
missing or malformed fields. Use ``decode_user`` / ``decode_binding`` at
the registry boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from idmigrate.config import MigrationAction
from idmigrate.exceptions import RecordDecodeError


class BindingKind(Enum):
    """The two binding registries."""

    CLUSTER = "cluster"
    """Role grant scoped to a whole cluster."""

    PROJECT = "project"
    """Role grant scoped to one project namespace."""

    @property
    def name_prefix(self) -> str:
        """Prefix for registry-assigned binding names."""
        return "crtb" if self is BindingKind.CLUSTER else "prtb"


class UserRecord(BaseModel):
    """
    A user as stored in the user registry.

    Only ``principal_ids`` and ``annotations`` are rewritten by the
    migration; every other field passes through untouched.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, description="Registry key of the user")
    display_name: str = Field(default="", description="Human readable name")
    username: str = Field(default="", description="Login name")
    principal_ids: list[str] = Field(default_factory=list)
    annotations: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    resource_version: int = Field(default=0, ge=0)


class BindingRecord(BaseModel):
    """
    A role grant as stored in a binding registry.

    ``name`` is the identity key in the backing store. The principal
    reference cannot be changed in place: rebinding creates a new record
    and deletes this one.
    """

    model_config = ConfigDict(extra="allow")

    kind: BindingKind
    name: str = Field(default="", description="Assigned by the registry on create")
    namespace: str = Field(default="", description="Cluster or project namespace")
    principal: str = Field(..., min_length=1, description="Principal reference granted the role")
    role_template: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1, description="Cluster or project the grant applies to")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    resource_version: int = Field(default=0, ge=0)

    def grant_key(self) -> tuple[str, str, str, str]:
        """The fields that make two bindings equivalent grants, regardless of name."""
        return (self.kind.value, self.namespace, self.role_template, self.target)

    def with_principal(self, principal: str) -> BindingRecord:
        """
        Copy this binding for a different principal.

        Name and resource version are cleared so that the registry assigns
        fresh ones on create.
        """
        return self.model_copy(
            update={"principal": principal, "name": "", "resource_version": 0},
            deep=True,
        )


def decode_user(data: Any) -> UserRecord:
    """
    Decode a user record from a mapping or JSON text.

    Raises:
        RecordDecodeError: If required fields are missing or malformed
    """
    try:
        if isinstance(data, str | bytes):
            return UserRecord.model_validate_json(data)
        return UserRecord.model_validate(data)
    except ValidationError as e:
        raise RecordDecodeError("user", str(e)) from e


def decode_binding(data: Any) -> BindingRecord:
    """
    Decode a binding record from a mapping or JSON text.

    Raises:
        RecordDecodeError: If required fields are missing or malformed
    """
    try:
        if isinstance(data, str | bytes):
            return BindingRecord.model_validate_json(data)
        return BindingRecord.model_validate(data)
    except ValidationError as e:
        raise RecordDecodeError("binding", str(e)) from e


@dataclass
class UserContext:
    """
    Transient join of one principal reference with its user and bindings.

    Attributes:
        principal_id: The reference this context was built from
        user: The user record owning the reference
        dn: Distinguished name, from the reference or resolved
        stable_id: Stable identifier, from the reference or resolved
        cluster_bindings: Cluster bindings carrying ``principal_id``
        project_bindings: Project bindings carrying ``principal_id``
    """

    principal_id: str
    user: UserRecord
    dn: str = ""
    stable_id: str = ""
    cluster_bindings: list[BindingRecord] = field(default_factory=list)
    project_bindings: list[BindingRecord] = field(default_factory=list)

    @property
    def bindings(self) -> list[BindingRecord]:
        """Project bindings first, then cluster bindings."""
        return [*self.project_bindings, *self.cluster_bindings]

    def add_bindings(self, kind: BindingKind, bindings: list[BindingRecord]) -> None:
        if kind is BindingKind.CLUSTER:
            self.cluster_bindings.extend(bindings)
        else:
            self.project_bindings.extend(bindings)


@dataclass(frozen=True)
class UserFailure:
    """A user reference that could not be resolved and was left unchanged."""

    user: str
    principal_id: str
    error: str


@dataclass
class MigrationReport:
    """
    Outcome of one orchestrator run.

    Attributes:
        action: The action the run executed
        skipped: Why the run did nothing, or None if it ran
        pending: Contexts whose reference is still DN-keyed
        migrated: Contexts whose reference is already ID-keyed
        failures: References that could not be resolved
        users_updated: Names of user records rewritten by this run
        bindings_created: Names of bindings created by this run
        bindings_adopted: Names of existing bindings reused instead of created
        bindings_deleted: Names of bindings deleted by this run
        orphaned_bindings: Names of bindings whose principal has no user context
    """

    action: MigrationAction
    skipped: str | None = None
    pending: list[UserContext] = field(default_factory=list)
    migrated: list[UserContext] = field(default_factory=list)
    failures: list[UserFailure] = field(default_factory=list)
    users_updated: list[str] = field(default_factory=list)
    bindings_created: list[str] = field(default_factory=list)
    bindings_adopted: list[str] = field(default_factory=list)
    bindings_deleted: list[str] = field(default_factory=list)
    orphaned_bindings: list[str] = field(default_factory=list)

    @property
    def was_skipped(self) -> bool:
        return self.skipped is not None

    def lines(self) -> list[str]:
        """Render the report as human-readable lines."""
        if self.skipped is not None:
            return [f"Migration skipped: {self.skipped}"]

        out = [f"Action: {self.action.value}"]
        out.append(f"Found {len(self.pending)} users to migrate")
        for ctx in self.pending:
            out.append(f"{ctx.user.name}: DN: {ctx.dn} -> stable ID: {ctx.stable_id or '?'}")
            out.extend(_binding_lines(ctx))

        out.append(f"Found {len(self.migrated)} users already migrated")
        for ctx in self.migrated:
            out.append(f"{ctx.user.name}: stable ID: {ctx.stable_id} -> DN: {ctx.dn or '?'}")
            out.extend(_binding_lines(ctx))

        for failure in self.failures:
            out.append(f"{failure.user}: cannot resolve {failure.principal_id}: {failure.error}")
        for name in self.orphaned_bindings:
            out.append(f"Skipped orphaned binding {name}")

        if self.action is not MigrationAction.CHECK:
            out.append(
                f"Updated {len(self.users_updated)} users, "
                f"created {len(self.bindings_created)} bindings, "
                f"adopted {len(self.bindings_adopted)} bindings, "
                f"deleted {len(self.bindings_deleted)} bindings"
            )
        return out


def _binding_lines(ctx: UserContext) -> list[str]:
    out = [
        f"{ctx.user.name}: Found {len(ctx.project_bindings)} project bindings",
        *(f"{ctx.user.name}: project binding {b.name}" for b in ctx.project_bindings),
        f"{ctx.user.name}: Found {len(ctx.cluster_bindings)} cluster bindings",
        *(f"{ctx.user.name}: cluster binding {b.name}" for b in ctx.cluster_bindings),
    ]
    return out


__all__ = [
    "BindingKind",
    "BindingRecord",
    "MigrationReport",
    "UserContext",
    "UserFailure",
    "UserRecord",
    "decode_binding",
    "decode_user",
]
