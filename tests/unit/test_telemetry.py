"""Tests for TelemetryConfig that do not touch the global tracer provider."""

from opentelemetry.sdk.trace.export import ConsoleSpanExporter

from sla_console.core.config import Settings
from sla_console.shared.telemetry.telemetry import TelemetryConfig, get_telemetry, set_telemetry


def test_disabled_config_installs_nothing() -> None:
    telemetry = TelemetryConfig.from_settings(Settings(_env_file=None, telemetry_enabled=False))
    assert telemetry.setup_telemetry() is None
    assert not telemetry.active
    telemetry.instrument_redis()
    telemetry.instrument_logging()
    telemetry.shutdown()


def test_exporter_selection() -> None:
    assert TelemetryConfig._build_exporter("none", None) is None
    assert isinstance(TelemetryConfig._build_exporter("console", None), ConsoleSpanExporter)
    assert isinstance(TelemetryConfig._build_exporter("otlp", None), ConsoleSpanExporter)
    assert isinstance(TelemetryConfig._build_exporter("jaeger", None), ConsoleSpanExporter)


def test_process_wide_instance() -> None:
    telemetry = TelemetryConfig("svc", "1.0")
    set_telemetry(telemetry)
    try:
        assert get_telemetry() is telemetry
    finally:
        set_telemetry(None)
    assert get_telemetry() is None
