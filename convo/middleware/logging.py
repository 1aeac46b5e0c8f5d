"""
Convo Backend — Request Logging Middleware
===========================================

What:  One access-log line per request: method, path, status, duration,
       request id, client IP and the authenticated profile ("-" when none).
How:   Level follows the status: 5xx → ERROR, 4xx → WARNING, else INFO.
       Bodies, cookies and the Authorization header are never logged, since
       they carry passwords and tokens.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from convo.middleware.request_id import request_id_var

logger = logging.getLogger("convo.access")

QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
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
        # Set by the get_current_profile dependency on protected routes
        profile_id = getattr(request.state, "profile_id", None) or "-"
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s as %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            profile_id,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "profile_id": profile_id,
            },
        )
        return response
