"""
Standard span attributes for idmigrate.

Example:
    >>> from idmigrate.observability.attributes import ATTR_USER_NAME, ATTR_PRINCIPAL_ID
    >>>
    >>> with tracer.span(
    ...     "idmigrate.orchestrator.update_user",
    ...     {ATTR_USER_NAME: user.name, ATTR_PRINCIPAL_ID: principal_id},
    ... ):
    ...     pass
"""

# =============================================================================
# Run Attributes
# =============================================================================

ATTR_MIGRATION_ACTION = "idmigrate.migration.action"
"""Action executed by the run (check, migrate, rollback)."""

ATTR_MIGRATION_SCOPE = "idmigrate.migration.scope"
"""Principal scope managed by the run."""

ATTR_CANDIDATE_COUNT = "idmigrate.migration.candidates"
"""Number of users selected for the run (integer)."""

ATTR_PENDING_COUNT = "idmigrate.migration.pending"
"""Number of DN-keyed contexts (integer)."""

ATTR_MIGRATED_COUNT = "idmigrate.migration.migrated"
"""Number of ID-keyed contexts (integer)."""

# =============================================================================
# Identity Attributes
# =============================================================================

ATTR_USER_NAME = "idmigrate.user.name"
"""Registry name of the user record."""

ATTR_PRINCIPAL_ID = "idmigrate.principal.id"
"""Full principal reference string."""

ATTR_DN = "idmigrate.directory.dn"
"""Distinguished name being looked up."""

ATTR_STABLE_ID = "idmigrate.directory.stable_id"
"""Stable identifier being looked up."""

# =============================================================================
# Binding Attributes
# =============================================================================

ATTR_BINDING_KIND = "idmigrate.binding.kind"
"""Binding registry kind (cluster or project)."""

ATTR_BINDING_NAME = "idmigrate.binding.name"
"""Registry name of the binding."""

# =============================================================================
# Database Attributes (OTEL semantic)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system (e.g., 'sqlite', 'postgresql')."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation (e.g., 'SELECT', 'INSERT')."""


__all__ = [
    "ATTR_BINDING_KIND",
    "ATTR_BINDING_NAME",
    "ATTR_CANDIDATE_COUNT",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_DN",
    "ATTR_MIGRATED_COUNT",
    "ATTR_MIGRATION_ACTION",
    "ATTR_MIGRATION_SCOPE",
    "ATTR_PENDING_COUNT",
    "ATTR_PRINCIPAL_ID",
    "ATTR_STABLE_ID",
    "ATTR_USER_NAME",
]
