"""
Observability Middleware.

Tags every request with a correlation id and logs one line per request,
carrying the matched route template and the terminal / dispatch ids from its
path so a dispatch board session can be followed through the logs.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("dispatch.http")

CORRELATION_HEADER = "X-Correlation-ID"

# Health checks are polled constantly; keep them out of the INFO stream
QUIET_PATHS = frozenset({"/health", "/"})


def dispatch_context(request: Request) -> dict:
    """Route template and dispatch path ids, once routing has run."""
    route = request.scope.get("route")
    path_params = request.scope.get("path_params") or {}
    return {
        "route": getattr(route, "path", request.url.path),
        "terminal_id": path_params.get("terminal_id"),
        "dispatch_id": path_params.get("dispatch_id"),
        "stop_id": path_params.get("stop_id"),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        response.headers[CORRELATION_HEADER] = correlation_id

        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            **dispatch_context(request),
        }
        message = "%s %s -> %s (%sms)"
        args = (request.method, log_data["route"], response.status_code, duration_ms)

        if response.status_code >= 500:
            logger.error(message, *args, extra=log_data)
        elif response.status_code >= 400:
            logger.warning(message, *args, extra=log_data)
        elif request.url.path in QUIET_PATHS:
            logger.debug(message, *args, extra=log_data)
        else:
            logger.info(message, *args, extra=log_data)

        return response
