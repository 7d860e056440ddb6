"""
Tracing for idmigrate components.

Each component takes an optional ``Tracer`` and otherwise builds one with
``create_tracer(__name__, enable_tracing)``:

    >>> class DirectoryResolver:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     def find_dn(self, stable_id: str) -> str:
    ...         with self._tracer.span("idmigrate.directory.find_dn", {ATTR_STABLE_ID: stable_id}):
    ...             ...

Span names follow ``idmigrate.<component>.<operation>``. OpenTelemetry is
an optional dependency; without it every tracer is a ``NullTracer``.
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator, Mapping
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

# Optional OpenTelemetry import
try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]

SpanAttributes = Mapping[str, Any]


def clean_attributes(attributes: SpanAttributes | None) -> dict[str, Any]:
    """
    Drop attributes OpenTelemetry would reject.

    None values are removed and enum members are replaced by their value,
    so callers can pass ``MigrationAction`` or an unset DN directly.
    """
    cleaned: dict[str, Any] = {}
    for key, value in (attributes or {}).items():
        if value is None:
            continue
        cleaned[key] = getattr(value, "value", value)
    return cleaned


@runtime_checkable
class Tracer(Protocol):
    """Anything that can open a span around a block of work."""

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open a span named ``name``; the context yields the span or None."""
        ...

    @property
    def enabled(self) -> bool:
        """True if spans are actually exported."""
        ...


class NullTracer:
    """Tracer used when tracing is off or OpenTelemetry is missing."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the globally configured OpenTelemetry provider.

    Args:
        tracer_name: Instrumentation scope, usually the module ``__name__``

    Raises:
        ImportError: If OpenTelemetry is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=clean_attributes(attributes))

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Tracer that records spans for assertions.

    ``spans`` holds ``(name, attributes)`` in the order spans were opened;
    ``failed`` holds the names of spans whose block raised.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("idmigrate.orchestrator.run", {"idmigrate.migration.action": "check"}):
        ...     pass
        >>> tracer.span_names
        ['idmigrate.orchestrator.run']
        >>> tracer.attributes_of("idmigrate.orchestrator.run")
        {'idmigrate.migration.action': 'check'}
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []
        self.failed: list[str] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, clean_attributes(attributes) if attributes is not None else None))
        try:
            yield None
        except BaseException:
            self.failed.append(name)
            raise

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def attributes_of(self, name: str) -> dict[str, Any] | None:
        """Attributes of the first span called ``name``."""
        for span_name, attributes in self.spans:
            if span_name == name:
                return attributes
        raise KeyError(name)

    def clear(self) -> None:
        self.spans.clear()
        self.failed.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Build the tracer a component should use.

    Returns:
        OpenTelemetryTracer when tracing is enabled and OpenTelemetry is
        installed, NullTracer otherwise
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "OTEL_AVAILABLE",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanAttributes",
    "Tracer",
    "clean_attributes",
    "create_tracer",
]
