"""Tests for OpenTelemetry tracing helpers."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from opentelemetry import trace

from graphmem.utils.telemetry import (
    ATTR_BATCH_SIZE,
    ATTR_RPC_ERROR_CODE,
    ATTR_RPC_ID,
    ATTR_RPC_METHOD,
    ATTR_TOOL_ELICITATION,
    ATTR_TOOL_NAME,
    _INSTRUMENTATION_NAME,
    configure_telemetry,
    get_tracer,
)


class TestGetTracer:
    def test_returns_tracer(self) -> None:
        tracer = get_tracer("test.module")
        assert isinstance(tracer, trace.Tracer)

    def test_default_name(self) -> None:
        tracer = get_tracer()
        assert isinstance(tracer, trace.Tracer)

    def test_noop_span(self) -> None:
        """Without SDK configured, spans should be no-ops."""
        tracer = get_tracer("test.noop")
        with tracer.start_as_current_span("graphmem.rpc") as span:
            span.set_attribute(ATTR_RPC_METHOD, "ping")


class TestConfigureTelemetry:
    def test_raises_without_sdk(self) -> None:
        """configure_telemetry requires opentelemetry-sdk."""
        with patch.dict("sys.modules", {"opentelemetry.sdk.resources": None}):
            with pytest.raises(ImportError, match="opentelemetry-sdk"):
                configure_telemetry()

    def test_otlp_raises_without_exporter(self) -> None:
        """OTLP export requires opentelemetry-exporter-otlp."""
        try:
            import opentelemetry.sdk.trace  # noqa: F401
        except ImportError:
            pytest.skip("opentelemetry-sdk not installed")

        with patch.dict(
            "sys.modules",
            {"opentelemetry.exporter.otlp.proto.grpc.trace_exporter": None},
        ), patch.object(trace, "set_tracer_provider"):
            with pytest.raises(ImportError, match="opentelemetry-exporter-otlp"):
                configure_telemetry(
                    export_to_console=False,
                    otlp_endpoint="http://localhost:4317",
                )

    def test_provider_carries_service_name(self) -> None:
        try:
            from opentelemetry.sdk.trace import TracerProvider
        except ImportError:
            pytest.skip("opentelemetry-sdk not installed")

        with patch.object(trace, "set_tracer_provider") as mock_set:
            configure_telemetry(service_name="graphmem-test", export_to_console=True)

        provider = mock_set.call_args.args[0]
        assert isinstance(provider, TracerProvider)
        assert provider.resource.attributes["service.name"] == "graphmem-test"


class TestAttributeConstants:
    @pytest.mark.parametrize(
        "name",
        [
            ATTR_RPC_METHOD,
            ATTR_RPC_ID,
            ATTR_RPC_ERROR_CODE,
            ATTR_TOOL_NAME,
            ATTR_TOOL_ELICITATION,
            ATTR_BATCH_SIZE,
        ],
    )
    def test_namespaced(self, name: str) -> None:
        assert name.startswith("graphmem.")

    def test_instrumentation_name(self) -> None:
        assert _INSTRUMENTATION_NAME == "graphmem"
