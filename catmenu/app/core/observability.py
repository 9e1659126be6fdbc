from __future__ import annotations

import logging

from fastapi import Depends, FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk import init as sentry_init
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

from .settings import Settings
from ..api import deps

logger = logging.getLogger(__name__)


def configure_observability(app: FastAPI, settings: Settings) -> None:
    if settings.SENTRY_DSN:
        sentry_init(dsn=settings.SENTRY_DSN, environment=settings.environment)
        app.add_middleware(SentryAsgiMiddleware)

    if settings.OTEL_ENDPOINT:
        resource = Resource.create({"service.name": settings.app_name})
        provider = TracerProvider(resource=resource)
        processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTEL_ENDPOINT))
        provider.add_span_processor(processor)
        trace.set_tracer_provider(provider)
        logger.info("OpenTelemetry tracing configured", extra={"endpoint": settings.OTEL_ENDPOINT})

    # Category cache hit/miss counters live in the default registry and are
    # exposed on the same endpoint.
    instrumentator = Instrumentator().instrument(app)
    instrumentator.expose(
        app,
        endpoint=settings.PROMETHEUS_ENDPOINT,
        include_in_schema=False,
        dependencies=[Depends(deps.require_role("metrics", "read"))],
    )
