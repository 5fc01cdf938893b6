from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from opsdesk.core.context import current_request_context
from opsdesk.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("opsdesk.request")


def _request_user_id(request: Request) -> str | None:
    context = current_request_context(request)
    return context.user_id if context is not None else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        method = request.method
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - started
            path = resolve_http_path_label(request)
            observe_http_request(method=method, path=path, status=500, duration=elapsed)
            logger.error(
                "http.error",
                exc_info=True,
                extra={
                    "method": method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": round(elapsed * 1000, 2),
                    "user_id": _request_user_id(request),
                },
            )
            raise

        elapsed = time.perf_counter() - started
        # Route is only bound to the scope once routing has run.
        path = resolve_http_path_label(request)
        observe_http_request(method=method, path=path, status=response.status_code, duration=elapsed)
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "http.request",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(elapsed * 1000, 2),
                "user_id": _request_user_id(request),
            },
        )
        return response
