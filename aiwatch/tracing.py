from typing import Callable

import structlog
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from aiwatch.config import Settings

logger = structlog.get_logger()

SERVICE = "aiwatch"


def _traces_url(endpoint: str) -> str:
    if not endpoint.startswith(("http://", "https://")):
        endpoint = f"http://{endpoint}"
    endpoint = endpoint.rstrip("/")
    if not endpoint.endswith("/v1/traces"):
        endpoint = f"{endpoint}/v1/traces"
    return endpoint


def init_tracing(app: FastAPI | None, settings: Settings) -> Callable[[], None]:
    """Configure tracing when enabled; returns a callable flushing the provider."""
    if not settings.tracing_enabled:
        return lambda: None

    url = _traces_url(settings.otlp_endpoint)
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: SERVICE}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=url)))
    trace.set_tracer_provider(provider)
    logger.info("Tracing initialized", endpoint=url)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
        logger.info("FastAPI instrumented for tracing")

    return provider.shutdown


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(SERVICE)
