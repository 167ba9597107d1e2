"""Reconciliation of processor webhook callbacks against stored transactions."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from api.services.background import BackgroundDispatcher
from api.services.crm_service import CrmService
from api.services.transaction_store import (
    apply_webhook_update,
    find_transaction_by_order_id,
    record_webhook_event,
)

logger = logging.getLogger(__name__)

UNKNOWN_EVENT_TYPE = "unknown"

_SUCCESS_STATUSES = {"success", "approved", "captured", "completed", "paid"}
_FAILED_STATUSES = {"failed", "failure", "declined", "error", "cancelled", "canceled", "expired"}


@dataclass
class ReconcileOutcome:
    event_id: uuid.UUID
    event_type: str
    order_id: str
    transaction_id: uuid.UUID | None

    @property
    def matched(self) -> bool:
        return self.transaction_id is not None


def extract_event_type(payload: dict[str, Any]) -> str:
    return str(payload.get("eventType") or UNKNOWN_EVENT_TYPE)


def extract_order_id(payload: dict[str, Any]) -> str:
    order_id = payload.get("orderId")
    if not order_id:
        order = payload.get("order")
        if isinstance(order, dict):
            order_id = order.get("orderId")
    return str(order_id).strip() if order_id else ""


def extract_status(payload: dict[str, Any]) -> str | None:
    status = payload.get("status")
    if status is None or status == "":
        return None
    return str(status)


def crm_status(status: str) -> str:
    normalized = status.strip().lower()
    if normalized in _SUCCESS_STATUSES:
        return "Success"
    if normalized in _FAILED_STATUSES:
        return "Failed"
    return status


class WebhookReconciler:
    def __init__(self, crm: CrmService, dispatcher: BackgroundDispatcher) -> None:
        self._crm = crm
        self._dispatcher = dispatcher

    async def reconcile(self, db: AsyncSession, payload: dict[str, Any]) -> ReconcileOutcome:
        event_type = extract_event_type(payload)
        order_id = extract_order_id(payload)
        status = extract_status(payload)

        transaction = await find_transaction_by_order_id(db, order_id) if order_id else None
        if transaction is not None:
            await apply_webhook_update(db, transaction, status)
        elif order_id:
            logger.info("Webhook %s for unknown order %s recorded unlinked", event_type, order_id)
        else:
            logger.info("Webhook %s carried no order id", event_type)

        event = await record_webhook_event(
            db,
            event_type=event_type,
            payload=payload,
            related_transaction_id=transaction.id if transaction is not None else None,
        )
        await db.commit()

        logger.info(
            "Webhook processed event=%s type=%s order_id=%s matched=%s",
            event.id,
            event_type,
            order_id,
            transaction is not None,
        )
        if transaction is not None and status:
            self._dispatcher.dispatch(
                self._crm.notify_payment_outcome(
                    order_id,
                    crm_status(status),
                    f"Processor webhook {event_type}",
                    str(transaction.id),
                ),
                label="crm:webhook",
            )

        return ReconcileOutcome(
            event_id=event.id,
            event_type=event_type,
            order_id=order_id,
            transaction_id=transaction.id if transaction is not None else None,
        )
