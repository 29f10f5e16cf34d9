"""API middleware for request logging and metrics."""

import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, cast

from fastapi import Request, Response
from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and response and tags it with a request id.

    The id is taken from ``X-Request-ID`` when the caller supplies one and
    is exposed to handlers as ``request.state.request_id``.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        logger.info(
            f"[{request_id}] Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            },
        )

        response = cast(Response, await call_next(request))
        duration = time.perf_counter() - start_time

        logger.info(
            f"[{request_id}] Response: {response.status_code} ({duration:.3f}s)",
            extra={
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for Prometheus metrics collection."""

    def __init__(self, app: Any, registry: Any = None) -> None:
        super().__init__(app)
        self.registry = registry or REGISTRY

        self.request_counter = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "path"],
            registry=self.registry,
        )
        self.active_requests = Gauge(
            "http_requests_active",
            "Active HTTP requests",
            registry=self.registry,
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        path = self._normalize_path(request.url.path)

        self.active_requests.inc()
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.perf_counter() - start_time
            self.active_requests.dec()
            self.request_counter.labels(
                method=request.method,
                path=path,
                status=status_code,
            ).inc()
            self.request_duration.labels(
                method=request.method,
                path=path,
            ).observe(duration)

        return cast(Response, response)

    def _normalize_path(self, path: str) -> str:
        """Collapse batch and job ids to keep label cardinality bounded."""
        return _UUID_RE.sub("{id}", path)
