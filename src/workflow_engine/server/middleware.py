"""Request middleware: correlation ids and timing."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from workflow_engine.engine.logging import correlation_id_var

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-ms"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Give every request a correlation id.

    The id comes from the ``X-Correlation-ID`` request header when present, or is
    generated. It is echoed on the response, stored on ``request.state`` and exposed
    to log records through :data:`correlation_id_var`.
    """

    async def dispatch(self, request: Request, call_next: Callable[..., Any]) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response  # type: ignore[no-any-return]


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Report how long each request took, and warn about slow ones."""

    def __init__(self, app: Callable[..., Any], slow_request_ms: float = 1000.0) -> None:
        super().__init__(app)
        self._slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable[..., Any]) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "elapsed_ms": round(elapsed_ms, 2),
        }
        if elapsed_ms > self._slow_request_ms:
            logger.warning("Slow request", extra=extra)
        else:
            logger.debug("Request completed", extra=extra)

        response.headers[RESPONSE_TIME_HEADER] = str(int(elapsed_ms))
        return response  # type: ignore[no-any-return]
