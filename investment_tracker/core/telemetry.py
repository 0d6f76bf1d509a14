"""Optional OpenTelemetry export for the API process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from investment_tracker.config import TrackerSettings

logger = logging.getLogger(__name__)

METRIC_EXPORT_INTERVAL_MS = 10000

# OpenTelemetry global providers can only be set once per process
_ACTIVE: "Telemetry | None" = None


@dataclass
class Telemetry:
    tracer_provider: TracerProvider
    meter_provider: MeterProvider
    logger_provider: LoggerProvider

    def shutdown(self) -> None:
        """Flush pending spans, metrics and log records."""

        self.tracer_provider.force_flush()
        self.logger_provider.force_flush()
        self.meter_provider.force_flush()


def _providers(settings: TrackerSettings) -> Telemetry:
    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: "investment-tracker",
        }
    )
    exporter_options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        exporter_options["endpoint"] = settings.telemetry_otlp_endpoint

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_options)))

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(**exporter_options),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**exporter_options)))

    return Telemetry(tracer_provider, meter_provider, logger_provider)


def setup_telemetry(
    app: FastAPI,
    settings: TrackerSettings,
    engine: AsyncEngine | None = None,
) -> Telemetry | None:
    """Export traces, metrics and logs over OTLP when enabled in settings.

    FastAPI requests, outbound httpx calls (quote lookups) and SQLAlchemy
    statements are instrumented. Returns ``None`` when telemetry is disabled.
    """

    global _ACTIVE  # noqa: PLW0603

    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return None

    if _ACTIVE is None:
        _ACTIVE = _providers(settings)
        trace.set_tracer_provider(_ACTIVE.tracer_provider)
        metrics.set_meter_provider(_ACTIVE.meter_provider)
        set_logger_provider(_ACTIVE.logger_provider)
        LoggingInstrumentor().instrument(set_logging_format=False)
        HTTPXClientInstrumentor().instrument(tracer_provider=_ACTIVE.tracer_provider)
        if engine is not None:
            SQLAlchemyInstrumentor().instrument(
                engine=engine.sync_engine,
                tracer_provider=_ACTIVE.tracer_provider,
            )
        logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "default OTLP endpoint")

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=_ACTIVE.tracer_provider,
        meter_provider=_ACTIVE.meter_provider,
    )
    return _ACTIVE


__all__ = ["Telemetry", "setup_telemetry"]
