"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics: aggregation latency, skipped items, bookings,
    store query fan-out

Both are initialised once at startup and injected into FastAPI via middleware.
Set OTEL_ENABLED=false to keep the default no-op tracer (tests, local runs).
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Histogram

from bydbio.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
AGGREGATION_LATENCY = Histogram(
    "aggregation_latency_seconds",
    "End-to-end latency of one aggregated view",
    ["view"],  # 'calendar' | 'diary' | 'feed' | 'public_content' | 'activity' | 'profile'
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

AGGREGATION_SKIPPED_TOTAL = Counter(
    "aggregation_skipped_items_total",
    "Records left out of an aggregated view",
    ["reason"],  # 'missing_date' | 'missing_author'
)

STORE_QUERIES_TOTAL = Counter(
    "store_queries_total",
    "Read queries issued by the aggregation layer",
    ["query"],
)

APPOINTMENTS_BOOKED_TOTAL = Counter(
    "appointments_booked_total",
    "Appointments successfully booked",
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    if not settings.otel_enabled:
        logger.info("OTel tracing disabled")
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)

    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    if settings.otel_enabled:
        FastAPIInstrumentor.instrument_app(app)
