"""
Observability utilities for idmigrate.

Tracing is composition-based: components accept a ``Tracer`` and default
to ``create_tracer(__name__, enable_tracing)``.

Note:
    OpenTelemetry is an optional dependency (``pip install idmigrate[telemetry]``).
    Every utility here works without it.
"""

from idmigrate.observability.attributes import (
    ATTR_BINDING_KIND,
    ATTR_BINDING_NAME,
    ATTR_CANDIDATE_COUNT,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DN,
    ATTR_MIGRATED_COUNT,
    ATTR_MIGRATION_ACTION,
    ATTR_MIGRATION_SCOPE,
    ATTR_PENDING_COUNT,
    ATTR_PRINCIPAL_ID,
    ATTR_STABLE_ID,
    ATTR_USER_NAME,
)
from idmigrate.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanAttributes,
    Tracer,
    clean_attributes,
    create_tracer,
)

__all__ = [
    "OTEL_AVAILABLE",
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
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanAttributes",
    "Tracer",
    "clean_attributes",
    "create_tracer",
]
