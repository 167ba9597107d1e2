"""Observability sink for payment events.

Events are always written as structured log lines on the ``paygate.telemetry``
logger. When a beacon URL is configured and telemetry is enabled, the same
event is also posted there. Nothing in this module raises to its caller.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from paygate.config import Settings

logger = logging.getLogger(__name__)
event_logger = logging.getLogger("paygate.telemetry")

SERVICE_NAME = "payment-gateway"


class TelemetryService:
    def __init__(
        self,
        *,
        enabled: bool,
        environment: str,
        beacon_url: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.enabled = enabled
        self.environment = environment
        self._beacon_url = beacon_url.strip()
        self._client: httpx.AsyncClient | None = None
        if enabled and self._beacon_url:
            self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> TelemetryService:
        return cls(
            enabled=settings.telemetry_enabled,
            environment=settings.telemetry_environment,
            beacon_url=settings.telemetry_beacon_url,
        )

    def _envelope(self, kind: str, fields: dict[str, Any]) -> dict[str, Any]:
        return {
            "kind": kind,
            **fields,
            "timestamp": datetime.now(UTC).isoformat(),
            "environment": self.environment,
            "service": SERVICE_NAME,
        }

    async def record_event(self, kind: str, **fields: Any) -> None:
        try:
            line = json.dumps(self._envelope(kind, fields), default=str)
            event_logger.info("%s", line)
            if self._client is not None:
                response = await self._client.post(
                    self._beacon_url,
                    content=line,
                    headers={"Content-Type": "application/json"},
                )
                if response.is_error:
                    logger.warning("Telemetry beacon rejected event %s: %s", kind, response.status_code)
        except Exception as exc:
            logger.warning("Telemetry event %s dropped: %s", kind, exc)

    async def record_error(
        self,
        error: BaseException,
        context: str,
        transaction_id: str | None = None,
    ) -> None:
        await self.record_event(
            "error",
            message=str(error),
            error_type=type(error).__name__,
            context=context,
            transaction_id=transaction_id,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
