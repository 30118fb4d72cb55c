import os
import logging
import structlog
from fastapi import FastAPI

from opentelemetry import trace

from shared.config.settings import METRICS_ENABLED, OTEL_ENABLED

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")


def add_otel_ids(logger, log_method, event_dict):
    """Correlate gateway log lines with the active request span."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict


def configure_logging():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_otel_ids,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(LOG_LEVEL)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_tracing(app: FastAPI, service_name: str):
    # Exporter packages load only when tracing is on
    from opentelemetry.sdk.resources import Resource, SERVICE_NAME
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    if not isinstance(trace.get_tracer_provider(), TracerProvider):
        provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True))
        )
        trace.set_tracer_provider(provider)
        # merchant webhook calls become child spans
        HTTPXClientInstrumentor().instrument()

    FastAPIInstrumentor.instrument_app(app)


def configure_metrics(app: FastAPI):
    from prometheus_fastapi_instrumentator import Instrumentator

    # request latency and status codes at /metrics; gateway counters share the registry
    Instrumentator().instrument(app).expose(app)


def setup_observability(app: FastAPI, service_name: str):
    """
    Logging, tracing and metrics for one gateway sub-app.
    OTEL_ENABLED / METRICS_ENABLED switch the last two off (tests, local runs).
    """
    configure_logging()
    if OTEL_ENABLED:
        configure_tracing(app, service_name)
    if METRICS_ENABLED:
        configure_metrics(app)
