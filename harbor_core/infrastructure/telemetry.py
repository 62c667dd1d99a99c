"""
Telemetry infrastructure for the authorization service.

This module provides a singleton TelemetryService that configures OpenTelemetry
tracing and metrics, plus the tracer and decision counter used by the
policy-decision service. Without setup() both fall back to OpenTelemetry's
no-op providers.
"""

from __future__ import annotations

import logging
from typing import Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.psycopg import PsycopgInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from harbor_core.config import settings

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "harbor_core.authz"


class TelemetryService:
    """Singleton service for configuring and managing OpenTelemetry."""

    _instance: Optional[TelemetryService] = None

    def __new__(cls) -> TelemetryService:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self.tracer_provider: Optional[TracerProvider] = None
        self.meter_provider: Optional[MeterProvider] = None

    def setup(self) -> None:
        """
        Initialize OpenTelemetry providers and instrumentations.
        Safe to call multiple times (idempotent).
        """
        if not settings.ENABLE_TELEMETRY:
            logger.info("Telemetry disabled via configuration.")
            return

        if self.tracer_provider is not None:
            logger.warning("Telemetry already initialized.")
            return

        resource = Resource.create({
            "service.name": settings.SERVICE_NAME,
            "deployment.environment": settings.ENVIRONMENT,
        })

        # Tracing (OTLP or console)
        self.tracer_provider = TracerProvider(resource=resource)
        if settings.OTEL_EXPORTER_OTLP_ENDPOINT:
            otlp_exporter = OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT)
            self.tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
            logger.info(f"OTLP Tracing enabled -> {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            self.tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
            logger.info("OTLP Endpoint not set. Tracing to console (Debug).")

        trace.set_tracer_provider(self.tracer_provider)

        # Metrics, scraped through the Prometheus reader
        reader = PrometheusMetricReader()
        self.meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
        metrics.set_meter_provider(self.meter_provider)

        # Profile store and audit sink queries
        PsycopgInstrumentor().instrument()
        logger.info("Telemetry initialized successfully.")

    def instrument_app(self, app) -> None:
        """Instrument a FastAPI application."""
        if not settings.ENABLE_TELEMETRY:
            return

        FastAPIInstrumentor.instrument_app(app, tracer_provider=self.tracer_provider)

        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator().instrument(app).expose(app)


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(INSTRUMENTATION_NAME)


_decision_counter = metrics.get_meter(INSTRUMENTATION_NAME).create_counter(
    "authz_decisions_total",
    unit="1",
    description="Authorization decisions by effect, trust domain and error code",
)


def record_decision(effect: str, trust_domain: str | None, error_code: str | None) -> None:
    _decision_counter.add(
        1,
        {
            "effect": effect,
            "trust_domain": trust_domain or "unknown",
            "error_code": error_code or "none",
        },
    )


# Global helper
def setup_telemetry() -> None:
    TelemetryService().setup()
