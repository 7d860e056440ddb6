"""
Migration orchestrator.

One run moves through a fixed sequence:

    gate -> gather -> resolve -> join -> partition -> execute

The gate requires the configuration to be enabled and not ``running``;
otherwise the run is a no-op. Whether a user is migrated is decided
only by the shape of its principal reference, never by a stored flag,
which is what makes re-runs after a partial failure safe: anything
already moved is simply not pending any more.

Within one user, bindings are rebound before the user record is
updated, so that lookups keyed by the old reference keep working until
the binding side is complete.

Failures:
    - directory and codec errors are per user: the user is reported and
      left unchanged, the run continues
    - registry errors stop the run and are raised as MigrationAbortedError
      after the status has been set to ``done``
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Protocol

from idmigrate.bindings import BindingGroups, BindingLocator, rebind
from idmigrate.config import (
    MigrationAction,
    MigrationConfiguration,
    MigrationStatus,
    get_or_create_configuration,
    save_configuration,
)
from idmigrate.exceptions import (
    CodecError,
    DirectoryError,
    MigrationAbortedError,
    RegistryError,
)
from idmigrate.models import (
    BindingKind,
    MigrationReport,
    UserContext,
    UserFailure,
    UserRecord,
)
from idmigrate.observability import (
    ATTR_CANDIDATE_COUNT,
    ATTR_MIGRATED_COUNT,
    ATTR_MIGRATION_ACTION,
    ATTR_MIGRATION_SCOPE,
    ATTR_PENDING_COUNT,
    ATTR_PRINCIPAL_ID,
    ATTR_USER_NAME,
    Tracer,
    create_tracer,
)
from idmigrate.principal import PrincipalScheme
from idmigrate.registry.interface import BindingRegistry, ConfigStore, UserRegistry
from idmigrate.retry import RetryConfig, retry_on_conflict

logger = logging.getLogger(__name__)

ORIGINAL_PRINCIPAL_ANNOTATION = "idmigrate/original-principal"


class IdentityResolver(Protocol):
    """Directory lookups the orchestrator needs; see DirectoryResolver."""

    def resolve_stable_id(self, dn: str) -> str: ...

    def find_dn(self, stable_id: str) -> str: ...


def partition(
    contexts: list[UserContext],
    scheme: PrincipalScheme,
) -> tuple[list[UserContext], list[UserContext]]:
    """
    Split contexts by the shape of their principal reference.

    Returns:
        (pending, migrated): DN-keyed contexts and ID-keyed contexts
    """
    pending: list[UserContext] = []
    migrated: list[UserContext] = []
    for ctx in contexts:
        if scheme.parse(ctx.principal_id).is_id:
            migrated.append(ctx)
        else:
            pending.append(ctx)
    return pending, migrated


class MigrationOrchestrator:
    """
    Runs one check, migrate or rollback pass over the managed scope.

    Example:
        >>> orchestrator = MigrationOrchestrator(
        ...     users=users,
        ...     cluster_bindings=cluster_registry,
        ...     project_bindings=project_registry,
        ...     config_store=store,
        ...     resolver=DirectoryResolver(connection, settings),
        ...     scheme=PrincipalScheme("openldap_user"),
        ... )
        >>> report = orchestrator.run()
        >>> report.users_updated
        ['u-alice']
    """

    def __init__(
        self,
        users: UserRegistry,
        cluster_bindings: BindingRegistry,
        project_bindings: BindingRegistry,
        config_store: ConfigStore,
        resolver: IdentityResolver,
        scheme: PrincipalScheme,
        *,
        retry_config: RetryConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._users = users
        self._registries: dict[BindingKind, BindingRegistry] = {
            BindingKind.CLUSTER: cluster_bindings,
            BindingKind.PROJECT: project_bindings,
        }
        self._config_store = config_store
        self._resolver = resolver
        self._scheme = scheme
        self._retry_config = retry_config or RetryConfig()
        self._locator = BindingLocator(
            [cluster_bindings, project_bindings],
            scheme,
            tracer=self._tracer,
        )

    def run(self) -> MigrationReport:
        """
        Execute the configured action once.

        Returns:
            The run report; ``report.skipped`` is set when the gate closed

        Raises:
            MigrationAbortedError: If a registry error stopped the run
            RegistryError: If the configuration cannot be read, or cannot be
                marked done after a completed run
        """
        configuration = get_or_create_configuration(self._config_store)
        action = configuration.action
        report = MigrationReport(action=action)

        if not configuration.enabled:
            report.skipped = "migration is disabled"
        elif configuration.status is MigrationStatus.RUNNING:
            report.skipped = "another run is in progress"
        if report.skipped is not None:
            logger.info(
                f"Skipping {action.value} run: {report.skipped}",
                extra={"action": action.value, "reason": report.skipped},
            )
            return report

        with self._tracer.span(
            "idmigrate.orchestrator.run",
            {ATTR_MIGRATION_ACTION: action.value, ATTR_MIGRATION_SCOPE: self._scheme.scope},
        ):
            logger.info(
                f"Starting {action.value} run for scope {self._scheme.scope}",
                extra={"action": action.value, "scope": self._scheme.scope},
            )
            if action.is_destructive:
                self._set_status(MigrationStatus.RUNNING)
            completed = False
            try:
                self._execute(configuration, report)
                completed = True
            except RegistryError as e:
                logger.error(
                    f"Stopping {action.value} run: {e}",
                    extra={"action": action.value, "error": str(e)},
                )
                raise MigrationAbortedError(report, str(e)) from e
            finally:
                if action.is_destructive:
                    self._release(action, completed)

        for line in report.lines():
            logger.info(line)
        return report

    def _set_status(self, status: MigrationStatus) -> None:
        """Write ``status`` over the stored record, keeping operator edits made meanwhile."""
        current = get_or_create_configuration(self._config_store)
        save_configuration(self._config_store, replace(current, status=status))
        logger.debug(f"Migration status set to {status.value}", extra={"status": status.value})

    def _release(self, action: MigrationAction, completed: bool) -> None:
        """
        Mark the run ``done``.

        After a stopped run the original error must reach the caller, so a
        failing status write is logged instead of replacing it.
        """
        try:
            self._set_status(MigrationStatus.DONE)
        except RegistryError as e:
            if completed:
                raise
            logger.error(
                f"Cannot mark {action.value} run done after it stopped: {e}",
                extra={"action": action.value, "error": str(e)},
            )

    def _execute(self, configuration: MigrationConfiguration, report: MigrationReport) -> None:
        all_users = self._users.list()
        candidates = self._gather(all_users, configuration)
        contexts = self._resolve(candidates, configuration.action, report)
        groups = self._locator.locate()
        self._join(contexts, groups, all_users, report)

        report.pending, report.migrated = partition(contexts, self._scheme)
        logger.info(
            f"Found {len(report.pending)} pending and {len(report.migrated)} migrated references",
            extra={
                "candidates": len(candidates),
                "pending": len(report.pending),
                "migrated": len(report.migrated),
                "failures": len(report.failures),
            },
        )

        with self._tracer.span(
            "idmigrate.orchestrator.execute",
            {
                ATTR_MIGRATION_ACTION: configuration.action.value,
                ATTR_PENDING_COUNT: len(report.pending),
                ATTR_MIGRATED_COUNT: len(report.migrated),
            },
        ):
            if configuration.action is MigrationAction.MIGRATE:
                for ctx in report.pending:
                    self._move(ctx, self._scheme.id_reference(ctx.stable_id), groups, report)
            elif configuration.action is MigrationAction.ROLLBACK:
                for ctx in report.migrated:
                    self._move(ctx, self._scheme.dn_reference(ctx.dn), groups, report)

    def _gather(
        self,
        all_users: list[UserRecord],
        configuration: MigrationConfiguration,
    ) -> list[UserRecord]:
        """Users with a managed reference, after the allow-list and the limit."""
        with self._tracer.span(
            "idmigrate.orchestrator.gather",
            {ATTR_CANDIDATE_COUNT: len(all_users)},
        ):
            candidates: dict[str, UserRecord] = {}
            for user in all_users:
                if user.name in candidates:
                    continue
                if any(self._scheme.manages(ref) for ref in user.principal_ids):
                    candidates[user.name] = user

            selected = list(candidates.values())
            if configuration.users:
                selected = [user for user in selected if user.name in configuration.users]
            if configuration.limit > 0:
                selected = selected[: configuration.limit]

        logger.info(
            f"Gathered {len(selected)} of {len(candidates)} users in scope",
            extra={"selected": len(selected), "in_scope": len(candidates)},
        )
        return selected

    def _resolve(
        self,
        users: list[UserRecord],
        action: MigrationAction,
        report: MigrationReport,
    ) -> list[UserContext]:
        contexts: list[UserContext] = []
        for user in users:
            for principal_id in dict.fromkeys(user.principal_ids):
                if not self._scheme.manages(principal_id):
                    continue
                try:
                    contexts.append(self._build_context(user, principal_id, action))
                except (DirectoryError, CodecError, ValueError) as e:
                    logger.warning(
                        f"Cannot resolve {principal_id} of user {user.name}: {e}",
                        extra={"user": user.name, "principal": principal_id, "error": str(e)},
                    )
                    report.failures.append(UserFailure(user.name, principal_id, str(e)))
        return contexts

    def _build_context(
        self,
        user: UserRecord,
        principal_id: str,
        action: MigrationAction,
    ) -> UserContext:
        reference = self._scheme.parse(principal_id)
        ctx = UserContext(principal_id=principal_id, user=user)
        if reference.is_dn:
            ctx.dn = reference.value
        else:
            ctx.stable_id = reference.value

        with self._tracer.span(
            "idmigrate.orchestrator.resolve",
            {ATTR_USER_NAME: user.name, ATTR_PRINCIPAL_ID: principal_id},
        ):
            if reference.is_dn and action is not MigrationAction.ROLLBACK:
                ctx.stable_id = self._resolver.resolve_stable_id(ctx.dn)
            elif reference.is_id:
                ctx.dn = self._original_dn(user)
                if not ctx.dn and action is MigrationAction.ROLLBACK:
                    ctx.dn = self._resolver.find_dn(ctx.stable_id)
        return ctx

    def _original_dn(self, user: UserRecord) -> str:
        """
        DN recorded on the user by an earlier migrate, if it is unambiguous.

        The annotation holds a single reference, so it is only trusted when
        the user has exactly one ID-keyed reference in scope.
        """
        original = user.annotations.get(ORIGINAL_PRINCIPAL_ANNOTATION, "")
        if not original or not self._scheme.manages(original):
            return ""
        id_refs = [
            ref
            for ref in user.principal_ids
            if self._scheme.manages(ref) and self._scheme.parse(ref).is_id
        ]
        if len(id_refs) != 1:
            return ""
        reference = self._scheme.parse(original)
        return reference.value if reference.is_dn else ""

    def _join(
        self,
        contexts: list[UserContext],
        groups: dict[BindingKind, BindingGroups],
        all_users: list[UserRecord],
        report: MigrationReport,
    ) -> None:
        by_principal = {ctx.principal_id: ctx for ctx in contexts}
        for kind, kind_groups in groups.items():
            for principal_id, bindings in kind_groups.items():
                ctx = by_principal.get(principal_id)
                if ctx is not None:
                    ctx.add_bindings(kind, bindings)

        # A binding may carry the target reference of a user whose record
        # was not updated yet; it is picked up as an existing grant on rebind.
        in_run = set(by_principal)
        for ctx in contexts:
            if ctx.stable_id:
                in_run.add(self._scheme.id_reference(ctx.stable_id))
            if ctx.dn:
                in_run.add(self._scheme.dn_reference(ctx.dn))
        owned = {ref for user in all_users for ref in user.principal_ids}

        for kind, kind_groups in groups.items():
            for principal_id, bindings in kind_groups.items():
                if principal_id in in_run:
                    continue
                if principal_id in owned:
                    logger.info(
                        f"Skipping {len(bindings)} {kind.value} bindings of {principal_id}: "
                        "no user context in this run",
                        extra={
                            "binding_kind": kind.value,
                            "principal": principal_id,
                            "bindings": [b.name for b in bindings],
                        },
                    )
                    continue
                for binding in bindings:
                    logger.warning(
                        f"Skipping orphaned {kind.value} binding {binding.name}: "
                        f"no user owns {principal_id}",
                        extra={
                            "binding": binding.name,
                            "binding_kind": kind.value,
                            "principal": principal_id,
                        },
                    )
                    report.orphaned_bindings.append(binding.name)

    def _move(
        self,
        ctx: UserContext,
        new_reference: str,
        groups: dict[BindingKind, BindingGroups],
        report: MigrationReport,
    ) -> None:
        """Rebind every binding of ``ctx`` to ``new_reference``, then update the user."""
        with self._tracer.span(
            "idmigrate.orchestrator.move",
            {ATTR_USER_NAME: ctx.user.name, ATTR_PRINCIPAL_ID: ctx.principal_id},
        ):
            logger.info(
                f"{ctx.user.name}: moving {ctx.principal_id} to {new_reference}",
                extra={
                    "user": ctx.user.name,
                    "principal": ctx.principal_id,
                    "new_principal": new_reference,
                    "bindings": len(ctx.bindings),
                },
            )
            for binding in ctx.bindings:
                existing = groups[binding.kind].setdefault(new_reference, [])
                result = rebind(self._registries[binding.kind], binding, new_reference, existing)
                if result.adopted:
                    report.bindings_adopted.append(result.binding.name)
                else:
                    existing.append(result.binding)
                    report.bindings_created.append(result.binding.name)
                report.bindings_deleted.append(result.replaced)

            if self._update_user(ctx.user.name, ctx.principal_id, new_reference):
                if ctx.user.name not in report.users_updated:
                    report.users_updated.append(ctx.user.name)

    def _update_user(self, name: str, old_reference: str, new_reference: str) -> bool:
        """
        Replace one reference on the stored user, re-reading on conflict.

        Returns:
            False if the stored user no longer carries ``old_reference``
        """
        to_id = self._scheme.parse(new_reference).is_id

        def apply() -> bool:
            user = self._users.get(name)
            if old_reference not in user.principal_ids:
                logger.warning(
                    f"User {name} no longer carries {old_reference}; leaving it unchanged",
                    extra={"user": name, "principal": old_reference},
                )
                return False

            principal_ids = list(
                dict.fromkeys(
                    new_reference if ref == old_reference else ref for ref in user.principal_ids
                )
            )
            annotations = dict(user.annotations)
            if to_id:
                annotations[ORIGINAL_PRINCIPAL_ANNOTATION] = old_reference
            else:
                annotations.pop(ORIGINAL_PRINCIPAL_ANNOTATION, None)

            self._users.update(
                user.model_copy(update={"principal_ids": principal_ids, "annotations": annotations})
            )
            logger.info(
                f"Updated user {name}: {old_reference} -> {new_reference}",
                extra={"user": name, "principal": old_reference, "new_principal": new_reference},
            )
            return True

        return retry_on_conflict(apply, self._retry_config, operation_name=f"update user {name}")


__all__ = [
    "ORIGINAL_PRINCIPAL_ANNOTATION",
    "IdentityResolver",
    "MigrationOrchestrator",
    "partition",
]
