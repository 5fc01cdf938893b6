from __future__ import annotations

from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "x-request-id"


@dataclass(slots=True)
class RequestContext:
    """Per-request identity carried on ``request.state``; ``user_id`` is filled once the token is verified."""

    correlation_id: str
    user_id: str | None = None

    @property
    def request_id(self) -> str:
        return self.correlation_id


def current_request_context(request: Request) -> RequestContext | None:
    context = getattr(request.state, "context", None)
    return context if isinstance(context, RequestContext) else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        context = RequestContext(correlation_id=getattr(request.state, "correlation_id", None) or "")
        request.state.context = context
        response = await call_next(request)
        if context.request_id:
            response.headers[REQUEST_ID_HEADER] = context.request_id
        return response
