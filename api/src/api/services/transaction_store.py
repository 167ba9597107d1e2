"""Persistence of payment transactions and webhook audit events."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from paygate.models import PaymentTransaction, WebhookEvent
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def create_transaction(
    db: AsyncSession,
    *,
    order_id: str,
    amount: Decimal,
    currency: str,
    status: str,
    gateway_response: str,
    client_request_id: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    user_id: str | None = None,
) -> PaymentTransaction:
    transaction = PaymentTransaction(
        id=uuid.uuid4(),
        order_id=order_id,
        amount=amount,
        currency=currency,
        status=status,
        gateway_response=gateway_response,
        client_request_id=client_request_id,
        ip_address=ip_address,
        user_agent=user_agent,
        user_id=user_id,
        webhook_received=False,
    )
    db.add(transaction)
    await db.flush()
    return transaction


async def find_transaction_by_order_id(
    db: AsyncSession,
    order_id: str,
) -> PaymentTransaction | None:
    """Most recent transaction for ``order_id``; empty ids never match."""
    if not order_id:
        return None
    result = await db.execute(
        select(PaymentTransaction)
        .where(PaymentTransaction.order_id == order_id)
        .order_by(PaymentTransaction.created_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def apply_webhook_update(
    db: AsyncSession,
    transaction: PaymentTransaction,
    status: str | None,
) -> None:
    # Last write wins; replays set the same values again.
    transaction.webhook_received = True
    if status:
        transaction.status = status
    transaction.updated_at = datetime.now(UTC)
    await db.flush()


async def record_webhook_event(
    db: AsyncSession,
    *,
    event_type: str,
    payload: Any,
    related_transaction_id: uuid.UUID | None,
) -> WebhookEvent:
    event = WebhookEvent(
        id=uuid.uuid4(),
        event_type=event_type,
        payload=payload if isinstance(payload, str) else json.dumps(payload, default=str),
        related_transaction_id=related_transaction_id,
        processed=True,
    )
    db.add(event)
    await db.flush()
    return event
