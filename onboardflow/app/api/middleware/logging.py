"""
Request logging middleware.

Binds a correlation id to every request (taken from the X-Correlation-ID,
X-Request-ID header or generated), logs request start and completion with
timing and echoes the id on the response.
"""

import time
import uuid
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from onboardflow.app.utils.logging import (
    clear_correlation_id,
    get_logger,
    set_correlation_id
)

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Structured request/response logging with correlation ids."""

    def __init__(
        self,
        app: ASGIApp,
        slow_request_threshold_ms: float = 1000.0,
        excluded_paths: Optional[tuple] = ("/health",),
        enable_correlation_ids: bool = True
    ):
        super().__init__(app)
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.excluded_paths = excluded_paths or ()
        self.enable_correlation_ids = enable_correlation_ids

    def _correlation_id(self, request: Request) -> str:
        return (
            request.headers.get(CORRELATION_HEADER)
            or request.headers.get("X-Request-ID")
            or f"req_{uuid.uuid4().hex[:8]}_{int(time.time())}"
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        correlation_id = self._correlation_id(request)
        if self.enable_correlation_ids:
            set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        should_log = request.url.path not in self.excluded_paths
        if should_log:
            logger.info(
                "Request started",
                method=request.method,
                path=request.url.path,
                user_id=request.headers.get("X-User-Id")
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request processing failed",
                method=request.method,
                path=request.url.path,
                error_type=type(exc).__name__,
                duration_ms=round((time.time() - start_time) * 1000, 2)
            )
            raise
        finally:
            if self.enable_correlation_ids:
                clear_correlation_id()

        duration_ms = round((time.time() - start_time) * 1000, 2)
        if should_log:
            log = logger.warning if duration_ms > self.slow_request_threshold_ms else logger.info
            log(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                correlation_id=correlation_id
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
