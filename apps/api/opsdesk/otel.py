from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span, Status, StatusCode

from opsdesk.context import get_correlation_id

SERVICE_NAME = "opsdesk-api"

_state: dict[str, Any] = {"provider": None, "exporters_installed": False}


def _provider(service_name: str) -> TracerProvider:
    provider = _state["provider"]
    if provider is None:
        provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": service_name,
                    "service.version": os.getenv("APP_VERSION", "0.1.0"),
                    "deployment.environment": os.getenv("APP_ENV", "local"),
                }
            )
        )
        trace.set_tracer_provider(provider)
        _state["provider"] = provider
    return provider


def setup_otel(service_name: str = SERVICE_NAME, enable: bool = True) -> TracerProvider | None:
    """Install the OTLP and optional console exporters once per process."""
    if not enable:
        return None
    provider = _provider(service_name)
    if _state["exporters_installed"]:
        return provider

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    _state["exporters_installed"] = True
    return provider


def setup_inmemory_otel(service_name: str = SERVICE_NAME) -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _provider(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def workflow_span(name: str, **attributes: Any) -> Iterator[Span]:
    """Span around one workflow step, tagged with the request correlation id.

    Exceptions are recorded on the span and re-raised.
    """
    tracer = get_tracer("opsdesk.workflow")
    with tracer.start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        correlation_id = get_correlation_id()
        if correlation_id:
            span.set_attribute("correlation_id", correlation_id)
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, str(value))
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)[:200]))
            raise


def get_fastapi_server_request_hook():
    def server_request_hook(span: Span | None, scope: dict[str, Any]) -> None:
        if span is None or not span.is_recording():
            return
        for name, value in scope.get("headers", []):
            if name == b"x-correlation-id" and value:
                span.set_attribute("correlation_id", value.decode("latin-1"))
                break

    return server_request_hook
