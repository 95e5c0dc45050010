"""Process bootstrap shared by every service entrypoint.

Wires JSON logging, OpenTelemetry tracing, HTTP request metrics and a redacted
dump of the startup configuration onto a FastAPI app.
"""

import os
from time import perf_counter

from fastapi import FastAPI, Request
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from roompay.common.config import settings
from roompay.common.logging import configure_logging, logger
from roompay.common.metrics import http_request_duration_seconds, http_requests_total

SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN", "DSN")


def _safe_env(name: str) -> str:
    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    return value


def log_startup_config(service_name: str, keys: list[str]) -> None:
    """Log selected startup config keys, redacting anything secret-like."""

    config = {"service": service_name}
    for key in keys:
        config[key] = _safe_env(key)
    logger.info("startup_config=%s", config)


def setup_tracing(service_name: str) -> bool:
    """Register a tracer provider exporting spans over OTLP HTTP.

    Returns False and leaves the no-op provider in place when no collector
    endpoint is configured.
    """

    if not settings.otel_exporter_otlp_endpoint:
        logger.info("tracing disabled service=%s: OTEL_EXPORTER_OTLP_ENDPOINT is not set", service_name)
        return False
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint))
    )
    trace.set_tracer_provider(provider)
    return True


def install_http_metrics(app: FastAPI) -> None:
    """Record request count and latency for every HTTP call on `app`."""

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = perf_counter()
        route = request.url.path
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name, route=route, method=request.method
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=request.method,
                status_code=str(status_code),
            ).inc()


def bootstrap_service(app: FastAPI, env_keys: list[str]) -> None:
    """Apply logging, tracing and metrics to a service app."""

    configure_logging()
    setup_tracing(settings.service_name)
    FastAPIInstrumentor.instrument_app(app)
    install_http_metrics(app)
    log_startup_config(settings.service_name, env_keys)
