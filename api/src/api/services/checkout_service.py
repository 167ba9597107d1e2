"""Checkout orchestration: sign, forward, persist."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from paygate.config import Settings
from paygate.services.processor_client import ProcessorClient, ProcessorUnavailableError
from paygate.services.signing import new_client_request_id
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.background import BackgroundDispatcher
from api.services.payment_result import PaymentResult
from api.services.telemetry_service import TelemetryService
from api.services.transaction_store import create_transaction

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "pending"


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def extract_order_id(data: Any) -> str:
    body = _as_dict(data)
    candidates = (
        body.get("orderId"),
        _as_dict(body.get("order")).get("orderId"),
        _as_dict(body.get("checkout")).get("orderId"),
    )
    for candidate in candidates:
        if candidate:
            return str(candidate)
    return ""


def extract_status(data: Any) -> str:
    body = _as_dict(data)
    status = body.get("status") or body.get("transactionStatus")
    return str(status) if status else DEFAULT_STATUS


def _parse_amount(value: Any) -> Decimal:
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")


class CheckoutService:
    def __init__(
        self,
        settings: Settings,
        processor: ProcessorClient,
        telemetry: TelemetryService,
        dispatcher: BackgroundDispatcher,
    ) -> None:
        self._settings = settings
        self._processor = processor
        self._telemetry = telemetry
        self._dispatcher = dispatcher

    def apply_server_settings(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Overwrite webhook and redirect URLs; callers never choose them."""
        body = dict(payload)
        checkout_settings = dict(_as_dict(body.get("checkoutSettings")))
        checkout_settings["webHooksUrl"] = self._settings.payment_webhook_url
        checkout_settings["redirectBackUrls"] = {
            "successUrl": self._settings.payment_redirect_success_url,
            "failureUrl": self._settings.payment_redirect_failure_url,
        }
        body["checkoutSettings"] = checkout_settings
        return body

    async def initiate(
        self,
        db: AsyncSession,
        payload: dict[str, Any],
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        user_id: str | None = None,
    ) -> PaymentResult:
        client_request_id = new_client_request_id()
        body = self.apply_server_settings(payload)
        amount_block = _as_dict(body.get("transactionAmount"))
        store_id = body.get("storeId")

        try:
            response = await self._processor.create_checkout(body, client_request_id=client_request_id)
        except ProcessorUnavailableError as exc:
            self._track(client_request_id, amount_block, store_id, status="failed")
            self._dispatcher.dispatch(
                self._telemetry.record_error(exc, "checkout", client_request_id),
                label="telemetry:checkout-error",
            )
            return PaymentResult.processor_unavailable()

        if not response.ok:
            logger.warning(
                "Checkout rejected by processor status=%s client_request_id=%s",
                response.status_code,
                client_request_id,
            )
            self._track(client_request_id, amount_block, store_id, status="failed")
            return PaymentResult.from_response(response)

        order_id = extract_order_id(response.data)
        status = extract_status(response.data)
        try:
            transaction = await create_transaction(
                db,
                order_id=order_id,
                amount=_parse_amount(amount_block.get("total")),
                currency=str(amount_block.get("currency") or ""),
                status=status,
                gateway_response=response.text,
                client_request_id=client_request_id,
                ip_address=ip_address,
                user_agent=user_agent,
                user_id=user_id,
            )
            await db.commit()
        except Exception:
            # The processor has accepted the attempt; nothing local records it.
            logger.exception(
                "Unrecorded checkout: processor accepted order_id=%s client_request_id=%s "
                "but the transaction could not be stored",
                order_id,
                client_request_id,
            )
            raise

        logger.info(
            "Checkout created transaction=%s order_id=%s status=%s",
            transaction.id,
            order_id,
            status,
        )
        self._track(client_request_id, amount_block, store_id, status="initiated", order_id=order_id)
        return PaymentResult.from_response(response)

    def _track(
        self,
        client_request_id: str,
        amount_block: dict[str, Any],
        store_id: Any,
        *,
        status: str,
        order_id: str = "",
    ) -> None:
        self._dispatcher.dispatch(
            self._telemetry.record_event(
                "transaction",
                transaction_id=order_id or client_request_id,
                amount=amount_block.get("total"),
                currency=amount_block.get("currency"),
                status=status,
                merchant_id=store_id,
            ),
            label="telemetry:checkout",
        )
