from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from chatcommerce.core.metrics import request_metrics
from chatcommerce.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        response = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            endpoint = _route_template(request)
            request_metrics.observe(
                endpoint=endpoint, method=request.method, status_code=status_code, duration_ms=duration_ms
            )
            logger.info(
                "request completed",
                extra={
                    "request_id": request_id,
                    "tenant_id": request.path_params.get("tenant_id"),
                    "endpoint": endpoint,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )
            if response is not None:
                response.headers["X-Request-ID"] = request_id
            clear_request_context()


def _route_template(request: Request) -> str:
    # Group /api/tenants/1/... and /api/tenants/2/... under one key.
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path
