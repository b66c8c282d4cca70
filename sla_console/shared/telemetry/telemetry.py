"""OpenTelemetry tracing for the console engine.

One TelemetryConfig per process. It owns the tracer provider, picks the
span exporter (console, OTLP gRPC or none) and instruments the Redis
client behind the real-time channel plus stdlib logging, so log lines
carry trace and span ids.
"""

from __future__ import annotations

import logging
import threading

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.instrumentor import BaseInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from sla_console.core.config import Settings

logger = logging.getLogger(__name__)

EXPORTERS = ("console", "otlp", "none")


class TelemetryConfig:
    """Tracer provider for one console process.

    Nothing is installed until setup_telemetry() runs; the instrument_*
    methods are no-ops until then, and shutdown() undoes all of it.
    """

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
    ) -> None:
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.tracer_provider: TracerProvider | None = None
        self._instrumented: list[BaseInstrumentor] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> TelemetryConfig:
        return cls(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=settings.telemetry_enabled,
            environment=settings.telemetry_environment,
        )

    @property
    def active(self) -> bool:
        return self.enabled and self.tracer_provider is not None

    def setup_telemetry(
        self,
        exporter_type: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
    ) -> TracerProvider | None:
        """Build the tracer provider and make it the global one.

        Setup failures are logged and leave telemetry off; the engine
        runs the same without it.

        Args:
            exporter_type: One of EXPORTERS. Unknown names fall back to console.
            otlp_endpoint: Collector address for "otlp" (e.g. http://localhost:4317).
            sample_rate: Fraction of traces kept, 0.0-1.0.

        Returns:
            The provider, or None when disabled or setup failed.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        resource = Resource.create(
            {
                SERVICE_NAME: self.service_name,
                SERVICE_VERSION: self.service_version,
                "deployment.environment": self.environment,
            }
        )
        try:
            provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sample_rate))
            exporter = self._build_exporter(exporter_type, otlp_endpoint)
            if exporter is not None:
                provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
        except Exception:
            logger.exception("Telemetry setup failed; continuing without tracing")
            return None
        self.tracer_provider = provider
        logger.info(
            "Tracing %s %s (%s) via %s exporter",
            self.service_name,
            self.service_version,
            self.environment,
            exporter_type,
        )
        return provider

    @staticmethod
    def _build_exporter(exporter_type: str, otlp_endpoint: str | None) -> SpanExporter | None:
        if exporter_type not in EXPORTERS:
            logger.warning("Unknown exporter %r, falling back to console", exporter_type)
            exporter_type = "console"
        if exporter_type == "none":
            return None
        if exporter_type == "otlp":
            if not otlp_endpoint:
                logger.warning("OTLP exporter selected without an endpoint, using console")
                return ConsoleSpanExporter()
            return OTLPSpanExporter(
                endpoint=otlp_endpoint, insecure=otlp_endpoint.startswith("http://")
            )
        return ConsoleSpanExporter()

    def _instrument(self, instrumentor: BaseInstrumentor, **kwargs: object) -> None:
        if not self.active:
            return
        name = type(instrumentor).__name__
        try:
            instrumentor.instrument(tracer_provider=self.tracer_provider, **kwargs)
        except Exception:
            logger.exception("%s failed", name)
            return
        self._instrumented.append(instrumentor)
        logger.info("%s enabled", name)

    def instrument_redis(self) -> None:
        """Trace Redis commands issued by the real-time channel."""
        self._instrument(RedisInstrumentor())

    def instrument_logging(self) -> None:
        """Add otelTraceID/otelSpanID to every log record."""
        self._instrument(LoggingInstrumentor(), set_logging_format=True)

    def shutdown(self) -> None:
        """Remove instrumentation, then flush and close the provider."""
        while self._instrumented:
            instrumentor = self._instrumented.pop()
            try:
                instrumentor.uninstrument()
            except Exception:
                logger.exception("Failed to remove %s", type(instrumentor).__name__)
        provider, self.tracer_provider = self.tracer_provider, None
        if provider is None:
            return
        try:
            provider.shutdown()
        except Exception:
            logger.exception("Telemetry shutdown failed")
            return
        logger.info("Telemetry shutdown complete")


_telemetry: TelemetryConfig | None = None
_telemetry_lock = threading.RLock()


def get_telemetry() -> TelemetryConfig | None:
    """Return the process-wide telemetry instance (set by open_session)."""
    with _telemetry_lock:
        return _telemetry


def set_telemetry(telemetry: TelemetryConfig | None) -> None:
    """Set or clear the process-wide telemetry instance."""
    global _telemetry
    with _telemetry_lock:
        _telemetry = telemetry
