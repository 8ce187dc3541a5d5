"""Maps TideGateException onto the JSON error envelope."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ..exceptions import TideGateException

logger = logging.getLogger(__name__)


async def tidegate_exception_handler(request: Request, exc: TideGateException) -> JSONResponse:
    """Answer with ``exc.status_code`` and ``exc.to_dict()``.

    4xx responses are the caller's problem and log at WARNING; 5xx at ERROR.
    401s carry ``WWW-Authenticate: Bearer``.
    """
    code = exc.error_code.value
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "%s %s failed with %s: %s",
        request.method,
        request.url.path,
        code,
        exc.message,
        extra={"error_code": code, "status_code": exc.status_code, "details": exc.details},
    )

    response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response
