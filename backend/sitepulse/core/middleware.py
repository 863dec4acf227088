"""
SitePulse - HTTP Middleware
Request ids and request timing for the badge endpoints
"""

import time
from typing import Callable, Set

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from sitepulse.core.logging_config import (
    logger,
    generate_request_id,
    set_request_id,
    set_user_id,
)


# Load balancer probes and docs
SKIP_LOGGING_PATHS: Set[str] = {
    "/",
    "/docs",
    "/openapi.json",
}


def should_skip_logging(path: str) -> bool:
    return path in SKIP_LOGGING_PATHS or path.endswith("/health")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every HTTP request with an id and logs its outcome.

    - Honours an incoming X-Request-ID, otherwise generates one
    - Echoes X-Request-ID and X-Response-Time on the response
    - Clears request/user context once the request is logged
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        path = request.url.path
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{request.method} {path} - Exception ({duration_ms:.2f}ms): {type(exc).__name__}",
                exc_info=True,
                extra={
                    "event_type": "http_request_error",
                    "http_method": request.method,
                    "http_path": path,
                    "duration_ms": round(duration_ms, 2),
                }
            )
            set_request_id("")
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if not should_skip_logging(path):
            status_code = response.status_code
            level = "error" if status_code >= 500 else "warning" if status_code >= 400 else "info"
            getattr(logger, level)(
                f"{request.method} {path} - {status_code} ({duration_ms:.2f}ms)",
                extra={
                    "event_type": "http_request_complete",
                    "http_method": request.method,
                    "http_path": path,
                    "http_status": status_code,
                    "duration_ms": round(duration_ms, 2),
                }
            )

        set_request_id("")
        set_user_id("")
        return response
