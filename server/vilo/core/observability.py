"""Observability setup: OpenTelemetry tracing, Prometheus metrics and structlog."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "vilo-api"
SERVICE_VERSION = "1.0.0"

REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
BOOKINGS_CREATED = Counter(
    'vilo_bookings_created_total',
    'Bookings created',
    ['source'],
    registry=REGISTRY
)

BOOKING_STATUS_CHANGES = Counter(
    'vilo_booking_status_changes_total',
    'Booking status transitions',
    ['from_status', 'to_status'],
    registry=REGISTRY
)

PAYMENTS_RECORDED = Counter(
    'vilo_payments_recorded_total',
    'Booking payments recorded',
    ['payment_method'],
    registry=REGISTRY
)

REFUNDS_REQUESTED = Counter(
    'vilo_refunds_requested_total',
    'Refund requests submitted',
    registry=REGISTRY
)

REFUND_TRANSITIONS = Counter(
    'vilo_refund_transitions_total',
    'Refund request status transitions',
    ['to_status'],
    registry=REGISTRY
)

QUOTE_REQUESTS_CREATED = Counter(
    'vilo_quote_requests_created_total',
    'Quote requests submitted',
    ['group_type'],
    registry=REGISTRY
)

QUOTE_REQUESTS_EXPIRED = Counter(
    'vilo_quote_requests_expired_total',
    'Quote requests expired by the background worker',
    registry=REGISTRY
)

AUTO_CHECKOUTS = Counter(
    'vilo_auto_checkouts_total',
    'Bookings checked out automatically',
    registry=REGISTRY
)

WORKER_RUNS = Counter(
    'vilo_worker_runs_total',
    'Background worker iterations',
    ['worker', 'outcome'],
    registry=REGISTRY
)


def setup_structured_logging() -> None:
    """Configure structlog; the console renderer in development, JSON elsewhere."""

    def add_trace_context(logger, method_name, event_dict):
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "deployment.environment": settings.environment,
    })


def setup_tracing():
    """Install a tracer provider, exporting over OTLP when an endpoint is configured."""
    provider = TracerProvider(resource=_resource())
    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Install an OTLP meter provider when an endpoint is configured."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))
    return metrics.get_meter(__name__)


def instrument_fastapi(app) -> None:
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,ready,metrics")


def instrument_sqlalchemy(engine) -> None:
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_prometheus_metrics() -> bytes:
    """Render the registry for the /metrics endpoint."""
    return generate_latest(REGISTRY)


def get_logger(name: str):
    """Return a structlog logger bound to `name`."""
    return structlog.get_logger(name)
