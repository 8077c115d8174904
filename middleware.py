from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from services.metrics import log_http

logger = logging.getLogger(__name__)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            dur_ms = int((time.perf_counter() - start) * 1000)
            try:
                route = request.scope.get("path") or request.url.path
                status = getattr(response, "status_code", 500)
                log_http(route=route, method=request.method, status=status, duration_ms=dur_ms)
            except Exception:
                # metrics must never fail the request
                logger.warning("metrics write failed for %s", request.url.path, exc_info=True)
