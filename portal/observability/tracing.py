"""
OpenTelemetry tracing setup for the exam portal auth service.
"""

from typing import Optional
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

SERVICE_NAME = "exam-portal-auth"


def setup_tracing(
    app: FastAPI,
    service_name: str = SERVICE_NAME,
    enable_console: bool = False
) -> TracerProvider:
    """
    Setup OpenTelemetry tracing.

    Args:
        app: Application to instrument
        service_name: Service name for traces
        enable_console: Enable console span exporter

    Returns:
        The configured tracer provider
    """
    tracer_provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if enable_console:
        tracer_provider.add_span_processor(
            BatchSpanProcessor(ConsoleSpanExporter())
        )

    trace.set_tracer_provider(tracer_provider)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider)
    return tracer_provider


def get_tracer(name: str = SERVICE_NAME):
    """Get a tracer instance."""
    return trace.get_tracer(name)


class TracingContext:
    """Helper for creating custom spans."""

    def __init__(self, tracer_name: str = SERVICE_NAME):
        self.tracer = get_tracer(tracer_name)

    def span(self, name: str, attributes: Optional[dict] = None):
        """Start a span as the current span; use as a context manager."""
        return self.tracer.start_as_current_span(
            name,
            attributes={key: str(value) for key, value in (attributes or {}).items()}
        )

    def trace_auth_check(self, token_source: str):
        """Trace bearer token resolution."""
        return self.span("auth.resolve", {"auth.token_source": token_source})

    def trace_login(self, principal_type: str):
        return self.span("auth.login", {"auth.principal_type": principal_type})
