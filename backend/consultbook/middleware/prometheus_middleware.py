"""
HTTP request metrics.

Every request except the scrape itself is timed and counted per method,
normalized route and status code. Identifiers in the path are collapsed so
``/api/v1/bookings/<ulid>/history`` is a single label value.
"""

import re
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..monitoring.prometheus_metrics import prometheus_metrics

SKIPPED_PATHS = frozenset({"/metrics"})

_ID_SEGMENT = re.compile(r"^(?:[0-9A-HJKMNP-TV-Z]{26}|\d+)$")


def normalize_path(raw_path: str) -> str:
    """Replace ULID and numeric path segments with ``:id``."""
    return "/".join(":id" if _ID_SEGMENT.match(segment) else segment for segment in raw_path.split("/"))


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect request duration, count and in-flight gauges."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in SKIPPED_PATHS:
            return await call_next(request)

        method = request.method
        path = normalize_path(request.url.path)
        status_code = 500

        prometheus_metrics.track_http_request_start(method, path)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            # Unhandled exceptions are counted as 500s
            prometheus_metrics.record_http_request(
                method=method,
                endpoint=path,
                duration=time.perf_counter() - started,
                status_code=status_code,
            )
            prometheus_metrics.track_http_request_end(method, path)
