"""
Annotation Core - Access Log Middleware
========================================

What:  One log line per HTTP request: method, path, status, duration, request ID.
How:   Wraps the downstream call with a perf_counter timer and picks the log
       level from the status class (5xx ERROR, 4xx WARNING, else INFO).
Who:   Registered by create_app(), inside RequestIDMiddleware.

Request bodies are never logged: they carry screenshots and annotation text.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from annotation_core.middleware.request_id import request_id_var

logger = logging.getLogger("annotation_core.access")

# Probed every few seconds by orchestrators; not worth a log line each.
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
