"""Access logging and per-call telemetry."""

from __future__ import annotations

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from api.middleware.rate_limit import resolve_client_ip

logger = logging.getLogger("paygate.access")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        client_ip = resolve_client_ip(request)
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - started) * 1000)
            logger.error(
                "%s %s failed duration_ms=%s ip=%s",
                request.method,
                request.url.path,
                duration_ms,
                client_ip,
            )
            raise

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "%s %s status=%s duration_ms=%s ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            client_ip,
        )

        dispatcher = getattr(request.app.state, "dispatcher", None)
        telemetry = getattr(request.app.state, "telemetry", None)
        if dispatcher is not None and telemetry is not None:
            dispatcher.dispatch(
                telemetry.record_event(
                    "api_call",
                    endpoint=request.url.path,
                    method=request.method,
                    status_code=response.status_code,
                    duration=duration_ms,
                    transaction_id=request.query_params.get("orderId"),
                ),
                label="telemetry:api-call",
            )
        return response
