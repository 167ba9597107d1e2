"""Read-only order status lookups against the processor."""

from __future__ import annotations

import logging

from paygate.services.processor_client import ProcessorClient, ProcessorUnavailableError
from paygate.services.signing import new_client_request_id

from api.services.background import BackgroundDispatcher
from api.services.payment_result import PaymentResult
from api.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)


class OrderQueryService:
    def __init__(
        self,
        processor: ProcessorClient,
        telemetry: TelemetryService,
        dispatcher: BackgroundDispatcher,
    ) -> None:
        self._processor = processor
        self._telemetry = telemetry
        self._dispatcher = dispatcher

    async def get_order(self, order_id: str) -> PaymentResult:
        client_request_id = new_client_request_id()
        try:
            response = await self._processor.get_order(order_id, client_request_id=client_request_id)
        except ProcessorUnavailableError as exc:
            self._dispatcher.dispatch(
                self._telemetry.record_error(exc, "order_query", order_id),
                label="telemetry:order-error",
            )
            return PaymentResult.processor_unavailable()

        if not response.ok:
            logger.info("Order lookup for %s returned %s", order_id, response.status_code)
        return PaymentResult.from_response(response)
