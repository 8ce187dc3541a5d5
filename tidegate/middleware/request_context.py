"""Per-request context: correlation id, latency header and one access-log line.

The access line carries the authenticated user when ``require_principal``
ran for the request (it leaves the id on ``request.state``). Only the path
is logged; the query string may hold a session token.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.logging_config import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    # Client-supplied ids are echoed back, but never unbounded.
    return incoming[:64] if incoming else uuid.uuid4().hex[:16]


class RequestContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = _request_id(request)
        token = request_id_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            response.headers[REQUEST_ID_HEADER] = rid
            response.headers["X-Response-Time"] = f"{elapsed_ms}ms"

            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                "%s %s -> %d",
                request.method,
                request.url.path,
                response.status_code,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "user_id": getattr(request.state, "user_id", None),
                    "client_ip": request.client.host if request.client else None,
                },
            )
            return response
        finally:
            request_id_var.reset(token)
