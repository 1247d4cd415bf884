"""Request logging middleware."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 2000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Assigns every request an id (reusing an incoming X-Request-ID) and logs
    method, path, status and duration. Slow requests are flagged.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.request_count = 0
        self.error_count = 0

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        self.request_count += 1
        request_id = request.headers.get("X-Request-ID") or f"req_{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id
        start_time = time.time()

        logger.info(
            f"[{request_id}] {request.method} {request.url.path} - "
            f"Client: {request.client.host if request.client else 'unknown'}"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            self.error_count += 1
            logger.error(f"[{request_id}] Error processing request: {e}", exc_info=True)
            raise

        duration_ms = (time.time() - start_time) * 1000
        status_code = response.status_code
        if status_code >= 500:
            log_level = logging.ERROR
            self.error_count += 1
        elif status_code >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO
        logger.log(
            log_level,
            f"[{request_id}] {request.method} {request.url.path} - "
            f"Status: {status_code} - Duration: {duration_ms:.2f}ms"
        )
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning(
                f"[{request_id}] SLOW REQUEST: {duration_ms:.2f}ms - {request.method} {request.url.path}"
            )

        response.headers["X-Request-ID"] = request_id
        return response
