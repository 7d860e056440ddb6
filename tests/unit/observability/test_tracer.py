"""
Unit tests for tracer protocol and implementations.

Tests for:
- Tracer Protocol (runtime_checkable)
- NullTracer, MockTracer and OpenTelemetryTracer
- create_tracer() factory function
- Span naming used by idmigrate components
"""

from __future__ import annotations

import contextlib
from typing import Any

import pytest

from idmigrate.config import MigrationAction
from idmigrate.observability import (
    ATTR_DN,
    ATTR_MIGRATION_ACTION,
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    clean_attributes,
    create_tracer,
)


class TestTracerProtocol:
    """Tests for Tracer protocol."""

    def test_null_tracer_implements_protocol(self):
        assert isinstance(NullTracer(), Tracer)

    def test_mock_tracer_implements_protocol(self):
        assert isinstance(MockTracer(), Tracer)

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OTEL not installed")
    def test_otel_tracer_implements_protocol(self):
        assert isinstance(OpenTelemetryTracer(__name__), Tracer)

    def test_custom_implementation_matches_protocol(self):
        """Any object with span() and enabled satisfies the protocol."""

        class CustomTracer:
            def span(self, name: str, attributes: dict[str, Any] | None = None):
                return contextlib.nullcontext()

            @property
            def enabled(self) -> bool:
                return False

        assert isinstance(CustomTracer(), Tracer)


class TestNullTracer:
    """Tests for NullTracer."""

    def test_span_yields_none(self):
        with NullTracer().span("idmigrate.orchestrator.run", {"key": "value"}) as span:
            assert span is None

    def test_is_disabled(self):
        assert NullTracer().enabled is False

    def test_exceptions_propagate(self):
        with pytest.raises(ValueError, match="boom"):
            with NullTracer().span("operation"):
                raise ValueError("boom")


class TestMockTracer:
    """Tests for MockTracer."""

    def test_records_spans_in_order(self):
        tracer = MockTracer()

        with tracer.span("outer", {ATTR_MIGRATION_ACTION: "migrate"}):
            with tracer.span("inner"):
                pass

        assert tracer.spans == [
            ("outer", {"idmigrate.migration.action": "migrate"}),
            ("inner", None),
        ]
        assert tracer.span_names == ["outer", "inner"]

    def test_clear(self):
        tracer = MockTracer()
        with tracer.span("operation"):
            pass

        tracer.clear()

        assert tracer.spans == []

    def test_records_span_even_when_body_raises(self):
        tracer = MockTracer()

        with pytest.raises(RuntimeError):
            with tracer.span("operation"):
                raise RuntimeError("failed")

        assert tracer.span_names == ["operation"]
        assert tracer.failed == ["operation"]

    def test_attributes_of(self):
        tracer = MockTracer()
        with tracer.span("idmigrate.bindings.locate", {"idmigrate.binding.kind": "cluster"}):
            pass

        assert tracer.attributes_of("idmigrate.bindings.locate") == {
            "idmigrate.binding.kind": "cluster"
        }
        with pytest.raises(KeyError):
            tracer.attributes_of("idmigrate.orchestrator.run")


class TestCreateTracer:
    """Tests for create_tracer()."""

    def test_disabled_returns_null_tracer(self):
        assert isinstance(create_tracer(__name__, enable_tracing=False), NullTracer)

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OTEL not installed")
    def test_enabled_returns_otel_tracer(self):
        tracer = create_tracer(__name__)

        assert isinstance(tracer, OpenTelemetryTracer)
        assert tracer.enabled

    @pytest.mark.skipif(OTEL_AVAILABLE, reason="OTEL installed")
    def test_enabled_without_otel_returns_null_tracer(self):
        assert isinstance(create_tracer(__name__), NullTracer)


class TestCleanAttributes:
    """Tests for clean_attributes()."""

    def test_drops_none_and_unwraps_enums(self):
        cleaned = clean_attributes(
            {ATTR_MIGRATION_ACTION: MigrationAction.ROLLBACK, ATTR_DN: None, "count": 3}
        )

        assert cleaned == {ATTR_MIGRATION_ACTION: "rollback", "count": 3}

    def test_none_mapping(self):
        assert clean_attributes(None) == {}
