"""
Request log middleware: one `http.request` entry per call.

The browser tracker may send its own X-Request-ID (a UUID) so a failed beacon can be
found in the logs; otherwise one is generated. Either way the id is bound into the
structlog context for everything logged while the request runs, stored on
request.state for the error handlers, and echoed back in the response.

Entries are tagged with the API area (`tracking`, `analytics`) and logged at
info / warning / error for 2xx-3xx / 4xx / 5xx respectively.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probe and docs traffic is not logged
QUIET_PREFIXES = ("/health", "/docs", "/redoc", "/openapi.json")

AREAS = {
    "/api/v1/track": "tracking",
    "/api/v1/analytics": "analytics",
}


def _incoming_request_id(request: Request) -> str | None:
    value = request.headers.get(REQUEST_ID_HEADER)
    if not value:
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return None


def _area(path: str) -> str | None:
    for prefix, area in AREAS.items():
        if path.startswith(prefix):
            return area
    return None


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - started) * 1000, 2)

            response.headers[REQUEST_ID_HEADER] = request_id
            path = request.url.path
            if path.startswith(QUIET_PREFIXES):
                return response

            if response.status_code >= 500:
                log = logger.error
            elif response.status_code >= 400:
                log = logger.warning
            else:
                log = logger.info

            log(
                "http.request",
                area=_area(path),
                method=request.method,
                path=path,
                query=str(request.query_params) or None,
                status_code=response.status_code,
                duration_ms=duration_ms,
                client_ip=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
        return response
