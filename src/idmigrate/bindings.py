"""
Binding lookup and the rebinding protocol.

A binding's name is its identity key in the registry, so its principal
reference is never edited in place. Rebinding creates a replacement
that differs only in the principal reference and deletes the old record
afterwards. If the delete fails both bindings exist and the subject keeps
access under the old reference; a failed create leaves nothing changed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from idmigrate.models import BindingKind, BindingRecord
from idmigrate.observability import (
    ATTR_BINDING_KIND,
    ATTR_MIGRATION_SCOPE,
    Tracer,
    create_tracer,
)
from idmigrate.principal import PrincipalScheme
from idmigrate.registry.interface import BindingRegistry

logger = logging.getLogger(__name__)

BindingGroups = dict[str, list[BindingRecord]]


def group_bindings_by_principal(
    registry: BindingRegistry,
    scheme: PrincipalScheme,
) -> BindingGroups:
    """
    Group one registry's bindings by principal reference.

    Bindings of other identity providers are ignored. Groups keep the
    registry's listing order.

    Args:
        registry: Binding registry of one kind
        scheme: The managed scope

    Returns:
        Mapping of exact reference string to the bindings carrying it
    """
    groups: BindingGroups = defaultdict(list)
    for binding in registry.list():
        if scheme.manages(binding.principal):
            groups[binding.principal].append(binding)
    return dict(groups)


class BindingLocator:
    """
    Groups the cluster and project bindings of the managed scope.

    Example:
        >>> locator = BindingLocator([cluster_registry, project_registry], scheme)
        >>> groups = locator.locate()
        >>> groups[BindingKind.CLUSTER]["openldap_user://cn=alice,dc=example,dc=org"]
        [BindingRecord(kind=<BindingKind.CLUSTER: 'cluster'>, name='crtb-5f3a9c1e', ...)]
    """

    def __init__(
        self,
        registries: list[BindingRegistry],
        scheme: PrincipalScheme,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._registries = registries
        self._scheme = scheme

    def locate(self) -> dict[BindingKind, BindingGroups]:
        """Group every registry's bindings, one independent pass per kind."""
        located: dict[BindingKind, BindingGroups] = {}
        for registry in self._registries:
            with self._tracer.span(
                "idmigrate.bindings.locate",
                {ATTR_BINDING_KIND: registry.kind.value, ATTR_MIGRATION_SCOPE: self._scheme.scope},
            ):
                groups = group_bindings_by_principal(registry, self._scheme)
            located[registry.kind] = groups
            logger.debug(
                f"Found {sum(len(g) for g in groups.values())} {registry.kind.value} bindings "
                f"for {len(groups)} principals",
                extra={"binding_kind": registry.kind.value, "principals": len(groups)},
            )
        return located


@dataclass(frozen=True)
class RebindResult:
    """
    Outcome of rebinding one binding.

    Attributes:
        replaced: Name of the old binding, now deleted
        binding: The binding now carrying the new reference
        adopted: True if ``binding`` already existed and was reused
    """

    replaced: str
    binding: BindingRecord
    adopted: bool = False


def find_equivalent(
    binding: BindingRecord,
    principal: str,
    candidates: list[BindingRecord],
) -> BindingRecord | None:
    """Find a binding granting the same role on the same target to ``principal``."""
    key = binding.grant_key()
    for candidate in candidates:
        if candidate.principal == principal and candidate.grant_key() == key:
            return candidate
    return None


def rebind(
    registry: BindingRegistry,
    binding: BindingRecord,
    principal: str,
    existing: list[BindingRecord] | None = None,
) -> RebindResult:
    """
    Move a binding to a new principal reference.

    The replacement is created first and the old binding deleted only
    after the create succeeded. When ``existing`` already holds an
    equivalent grant for ``principal`` (left by an earlier run whose
    delete failed) that binding is adopted instead of creating another.

    Args:
        registry: Registry holding ``binding``
        binding: The binding to move
        principal: The new principal reference
        existing: Bindings already carrying ``principal``

    Returns:
        What was created or adopted, and the deleted binding's name

    Raises:
        RegistryError: If the create or the delete fails
    """
    adopted = find_equivalent(binding, principal, existing or [])
    if adopted is not None:
        logger.info(
            f"Adopting existing {binding.kind.value} binding {adopted.name} for {principal}",
            extra={"binding": adopted.name, "binding_kind": binding.kind.value},
        )
        replacement = adopted
    else:
        replacement = registry.create(binding.with_principal(principal))
        logger.info(
            f"Created {binding.kind.value} binding {replacement.name} "
            f"replacing {binding.name}",
            extra={
                "binding": replacement.name,
                "replaced": binding.name,
                "binding_kind": binding.kind.value,
                "principal": principal,
            },
        )

    registry.delete(binding.name)
    logger.info(
        f"Deleted {binding.kind.value} binding {binding.name}",
        extra={
            "binding": binding.name,
            "binding_kind": binding.kind.value,
            "principal": binding.principal,
        },
    )
    return RebindResult(replaced=binding.name, binding=replacement, adopted=adopted is not None)


__all__ = [
    "BindingGroups",
    "BindingLocator",
    "RebindResult",
    "find_equivalent",
    "group_bindings_by_principal",
    "rebind",
]
