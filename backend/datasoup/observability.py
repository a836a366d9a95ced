"""Optional OpenTelemetry tracing for sync runs and the dashboard.

Every span helper degrades to a no-op when the ``otel`` extra is not
installed, so callers never branch on it.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from datasoup.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

TRACER_NAME = "datasoup"


def setup_opentelemetry(role: str, app=None, settings: Settings | None = None) -> bool:
    """Install a tracer provider for ``role`` ("sync" or "dashboard").

    Returns False when OpenTelemetry is unavailable or already configured.
    """
    settings = settings or default_settings
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
    except ImportError as exc:
        logger.info("OpenTelemetry disabled (packages missing): %s", exc)
        return False

    if trace.get_tracer_provider().__class__.__name__ != "ProxyTracerProvider":
        return False

    resource = Resource.create(
        {
            "service.name": f"datasoup-{role}",
            "deployment.environment": settings.APP_ENV,
            "datasoup.catalog_url": settings.CATALOG_SEARCH_URL,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor().instrument()
    except ImportError as exc:
        logger.info("HTTPX OTel instrumentation unavailable: %s", exc)

    if app is not None:
        try:
            from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

            FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")
        except ImportError as exc:
            logger.info("FastAPI OTel instrumentation unavailable: %s", exc)
    return True


@contextmanager
def resource_span(name: str, **attributes: Any) -> Iterator[Any]:
    """Span around one resource's processing; yields ``None`` without OTel.

    ``None`` attribute values are dropped. Exceptions propagate and are
    recorded on the span.
    """
    try:
        from opentelemetry import trace
    except ImportError:
        yield None
        return

    attrs = {f"datasoup.{k}": v for k, v in attributes.items() if v is not None}
    with trace.get_tracer(TRACER_NAME).start_as_current_span(name, attributes=attrs) as span:
        yield span
