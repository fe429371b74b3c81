"""
Request middleware: request id propagation, timing, slow-request warnings and metrics.
"""

import logging
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.core.config import settings
from app.core.logging_config import generate_request_id, set_request_id
from app.core.metrics import MetricsSink, NoOpMetricsSink

logger = logging.getLogger(__name__)


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, metrics: Optional[MetricsSink] = None, slow_request_ms: Optional[int] = None):
        super().__init__(app)
        self.metrics = metrics or NoOpMetricsSink()
        self.slow_request_ms = settings.slow_request_ms if slow_request_ms is None else slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self.metrics.record_error("unhandled")
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        self.metrics.record_request(route_path, request.method, response.status_code, duration_ms)
        if response.status_code >= 500:
            self.metrics.record_error(f"http_{response.status_code}")
        if duration_ms > self.slow_request_ms:
            logger.warning("Slow request: %s %s took %.0fms", request.method, request.url.path, duration_ms)

        response.headers["X-Request-ID"] = request_id
        return response
