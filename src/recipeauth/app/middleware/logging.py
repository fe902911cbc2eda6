"""Request logging middleware.

Provides canonical log line per request with trace ID propagation.
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from recipeauth.app.config import get_settings
from recipeauth.app.logging import bind_request, unbind_request
from recipeauth.app.metrics.collector import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL
from recipeauth.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

# Path normalization patterns (replace dynamic IDs with placeholders)
_PATH_PATTERNS = [
    (
        re.compile(r"/api/v1/auth/admin/users/[0-9A-Za-z]+/(role|unlock)"),
        r"/api/v1/auth/admin/users/:id/\1",
    ),
]

# Whitelist of known endpoints for metrics (cardinality control)
_KNOWN_ENDPOINTS = frozenset({
    "/api/v1/auth/register",
    "/api/v1/auth/login",
    "/api/v1/auth/refresh",
    "/api/v1/auth/logout",
    "/api/v1/auth/session",
    "/api/v1/auth/me",
    "/api/v1/auth/change-password",
    "/api/v1/auth/check-password-strength",
    "/api/v1/auth/security-status",
    "/api/v1/auth/admin/revocations",
    "/api/v1/auth/admin/users/:id/role",
    "/api/v1/auth/admin/users/:id/unlock",
})

_SKIP_PATHS = ("/health", "/metrics")


def _normalize_path(path: str) -> str:
    """Normalize path and apply whitelist for cardinality control."""
    for pattern, replacement in _PATH_PATTERNS:
        path = pattern.sub(replacement, path)
    return path if path in _KNOWN_ENDPOINTS else "other"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging with trace ID propagation.

    Features:
    - Sets trace_id from X-Trace-ID header or generates new one
    - Logs canonical request log line (one per request)
    - Adds X-Trace-ID header to response

    Usage:
        app.add_middleware(LoggingMiddleware)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        trace_id = bind_request(request.headers.get("x-trace-id"))
        path = request.url.path

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "Request failed",
                extra={
                    "event": LogEvent.REQUEST_FAILED,
                    "method": request.method,
                    "path": path,
                    "duration_ms": (time.monotonic() - start) * 1000,
                    "trace_id": trace_id,
                },
            )
            raise
        finally:
            unbind_request()

        duration_seconds = time.monotonic() - start
        duration_ms = duration_seconds * 1000

        if path not in _SKIP_PATHS:
            endpoint = _normalize_path(path)
            HTTP_REQUESTS_TOTAL.labels(
                method=request.method,
                endpoint=endpoint,
                status=str(response.status_code),
            ).inc()
            HTTP_REQUEST_DURATION.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(duration_seconds)

            identity = getattr(request.state, "identity", None)
            logger.info(
                "Request completed",
                extra={
                    "event": LogEvent.REQUEST_COMPLETE,
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "user_id": identity.user_id if identity else None,
                    "trace_id": trace_id,
                },
            )

            threshold_ms = get_settings().logging.slow_threshold_ms
            if duration_ms > threshold_ms:
                logger.warning(
                    "Slow request detected",
                    extra={
                        "event": LogEvent.REQUEST_SLOW,
                        "method": request.method,
                        "path": path,
                        "status": response.status_code,
                        "duration_ms": duration_ms,
                        "threshold_ms": threshold_ms,
                        "trace_id": trace_id,
                    },
                )

        response.headers["X-Trace-ID"] = trace_id
        return response
