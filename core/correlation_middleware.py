"""
Correlation ID Middleware

Tags each request with a correlation ID that every log entry written
while handling it carries.
"""

import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.logging import get_logger, set_correlation_id

log = get_logger("http")


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Reuses an incoming X-Correlation-ID or generates one, and echoes it
    back on the response.
    """

    HEADER_NAME = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        set_correlation_id(correlation_id)

        response = await call_next(request)
        log.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )

        response.headers[self.HEADER_NAME] = correlation_id
        return response
