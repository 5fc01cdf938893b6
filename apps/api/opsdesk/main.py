from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.exc import SQLAlchemyError

from opsdesk.api.routes import router as api_router
from opsdesk.context import get_correlation_id
from opsdesk.core.config import get_settings
from opsdesk.core.context import RequestContextMiddleware
from opsdesk.core.events import DomainEvent, event_bus
from opsdesk.logging import configure_logging
from opsdesk.middleware.correlation_id import CorrelationIdMiddleware
from opsdesk.middleware.request_logging import RequestLoggingMiddleware
from opsdesk.otel import SERVICE_NAME, get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("opsdesk.lifecycle")
domain_logger = logging.getLogger("opsdesk.events")

_domain_event_types = [
    "task.created",
    "task.updated",
    "task.timer_started",
    "task.timer_stopped",
    "po_request.created",
    "sales_order_request.created",
    "approval.decided",
    "quotation_request.task_assigned",
]


def _on_system_started(event: DomainEvent) -> None:
    logger.info("system_event", extra={"status": event.name})


def _on_domain_event(event: DomainEvent) -> None:
    payload = event.payload
    domain_logger.info(
        event.name,
        extra={
            "status": payload.get("status") or payload.get("decision"),
            "task_id": payload.get("task_id"),
            "request_no": payload.get("request_no"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    event_bus.subscribe(_on_system_started, "system.started")
    event_bus.subscribe(_on_domain_event, *_domain_event_types)
    event_bus.publish("system.started", {"service": SERVICE_NAME})
    yield


app = FastAPI(title="OpsDesk API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("db.error", exc_info=exc, extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Unable to complete the request. Please try again.",
            "correlation_id": get_correlation_id(),
        },
    )


settings = get_settings()
if settings.otel_enabled:
    setup_otel(SERVICE_NAME)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
