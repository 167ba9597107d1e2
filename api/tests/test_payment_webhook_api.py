"""Tests for processor webhook reconciliation."""

from __future__ import annotations

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from api.services.background import BackgroundDispatcher
from api.services.webhook_service import WebhookReconciler
from gateway_fixtures import added_objects
from httpx import AsyncClient
from paygate.models import PaymentTransaction, WebhookEvent

WEBHOOK = "/api/gateway/payment/webhook"


def _stored_transaction(order_id: str = "ORD1") -> PaymentTransaction:
    return PaymentTransaction(
        id=uuid.uuid4(),
        order_id=order_id,
        status="pending",
        webhook_received=False,
        currency="USD",
        client_request_id=str(uuid.uuid4()),
    )


def _return_transaction(mock_db, transaction: PaymentTransaction | None) -> None:
    result = MagicMock()
    result.scalars.return_value.first.return_value = transaction
    mock_db.execute.return_value = result


@pytest.mark.asyncio
async def test_webhook_updates_matching_transaction(client: AsyncClient, mock_db):
    tx = _stored_transaction()
    _return_transaction(mock_db, tx)
    payload = {"eventType": "PAYMENT_COMPLETED", "orderId": "ORD1", "status": "success"}

    response = await client.post(WEBHOOK, json=payload)

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert tx.status == "success"
    assert tx.webhook_received is True
    assert tx.updated_at is not None

    events = added_objects(mock_db, WebhookEvent)
    assert len(events) == 1
    assert events[0].event_type == "PAYMENT_COMPLETED"
    assert events[0].related_transaction_id == tx.id
    assert events[0].processed is True
    assert json.loads(events[0].payload) == payload
    mock_db.commit.assert_awaited()


@pytest.mark.asyncio
async def test_webhook_for_unknown_order_is_stored_unlinked(client: AsyncClient, mock_db):
    response = await client.post(
        WEBHOOK, json={"eventType": "PAYMENT_COMPLETED", "orderId": "NOPE", "status": "success"}
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    events = added_objects(mock_db, WebhookEvent)
    assert len(events) == 1
    assert events[0].related_transaction_id is None
    assert added_objects(mock_db, PaymentTransaction) == []


@pytest.mark.asyncio
async def test_webhook_reads_nested_order_id(client: AsyncClient, mock_db):
    tx = _stored_transaction()
    _return_transaction(mock_db, tx)

    response = await client.post(
        WEBHOOK, json={"eventType": "PAYMENT_FAILED", "order": {"orderId": "ORD1"}, "status": "failed"}
    )

    assert response.status_code == 200
    assert tx.status == "failed"
    assert added_objects(mock_db, WebhookEvent)[0].related_transaction_id == tx.id


@pytest.mark.asyncio
async def test_webhook_without_status_keeps_transaction_status(client: AsyncClient, mock_db):
    tx = _stored_transaction()
    _return_transaction(mock_db, tx)

    response = await client.post(WEBHOOK, json={"eventType": "NOTICE", "orderId": "ORD1"})

    assert response.status_code == 200
    assert tx.status == "pending"
    assert tx.webhook_received is True


@pytest.mark.asyncio
async def test_webhook_event_type_defaults_to_unknown(client: AsyncClient, mock_db):
    response = await client.post(WEBHOOK, json={"orderId": "ORD1"})

    assert response.status_code == 200
    assert added_objects(mock_db, WebhookEvent)[0].event_type == "unknown"


@pytest.mark.asyncio
async def test_webhook_replay_records_each_delivery(client: AsyncClient, mock_db):
    tx = _stored_transaction()
    _return_transaction(mock_db, tx)
    payload = {"eventType": "PAYMENT_COMPLETED", "orderId": "ORD1", "status": "success"}

    first = await client.post(WEBHOOK, json=payload)
    second = await client.post(WEBHOOK, json=payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert len(added_objects(mock_db, WebhookEvent)) == 2
    assert tx.status == "success"
    assert tx.webhook_received is True


@pytest.mark.asyncio
async def test_webhook_rejects_invalid_json(client: AsyncClient, mock_db):
    response = await client.post(
        WEBHOOK, content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert "Invalid webhook payload" in response.json()["detail"]
    mock_db.add.assert_not_called()


@pytest.mark.asyncio
async def test_webhook_rejects_non_object_payload(client: AsyncClient, mock_db):
    response = await client.post(WEBHOOK, json=["ORD1"])

    assert response.status_code == 400
    mock_db.add.assert_not_called()


@pytest.mark.asyncio
async def test_webhook_storage_failure_is_500(lenient_client: AsyncClient, mock_db):
    mock_db.flush.side_effect = RuntimeError("database unavailable")

    response = await lenient_client.post(WEBHOOK, json={"eventType": "X", "orderId": "ORD1"})

    assert response.status_code == 500
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_webhook_mirrors_outcome_to_crm(app, client: AsyncClient, mock_db):
    crm = MagicMock()
    crm.notify_payment_outcome = AsyncMock()
    app.state.crm = crm
    tx = _stored_transaction()
    _return_transaction(mock_db, tx)

    response = await client.post(
        WEBHOOK, json={"eventType": "PAYMENT_COMPLETED", "orderId": "ORD1", "status": "approved"}
    )
    await app.state.dispatcher.drain()

    assert response.status_code == 200
    crm.notify_payment_outcome.assert_awaited_once()
    args = crm.notify_payment_outcome.await_args.args
    assert args[0] == "ORD1"
    assert args[1] == "Success"
    assert args[3] == str(tx.id)


@pytest.mark.asyncio
async def test_webhook_unmatched_does_not_touch_crm(app, client: AsyncClient):
    crm = MagicMock()
    crm.notify_payment_outcome = AsyncMock()
    app.state.crm = crm

    await client.post(WEBHOOK, json={"orderId": "NOPE", "status": "success"})
    await app.state.dispatcher.drain()

    crm.notify_payment_outcome.assert_not_called()


@pytest.mark.asyncio
async def test_webhook_is_not_rate_limited(client: AsyncClient, app):
    app.state.settings = app.state.settings.model_copy(update={"gateway_rate_limit": 1})
    for _ in range(3):
        response = await client.post(WEBHOOK, json={"eventType": "PING"})
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_reconcile_reports_match_outcome(mock_db):
    crm = MagicMock()
    crm.notify_payment_outcome = AsyncMock()
    dispatcher = BackgroundDispatcher()
    reconciler = WebhookReconciler(crm, dispatcher)
    tx = _stored_transaction()
    _return_transaction(mock_db, tx)

    outcome = await reconciler.reconcile(
        mock_db, {"eventType": "PAYMENT_COMPLETED", "order": {"orderId": " ORD1 "}, "status": "paid"}
    )
    await dispatcher.drain()

    assert outcome.matched
    assert outcome.transaction_id == tx.id
    assert outcome.event_type == "PAYMENT_COMPLETED"
    assert outcome.order_id == "ORD1"
    assert outcome.event_id == added_objects(mock_db, WebhookEvent)[0].id


@pytest.mark.asyncio
async def test_reconcile_reports_unlinked_outcome(mock_db):
    reconciler = WebhookReconciler(MagicMock(), BackgroundDispatcher())

    outcome = await reconciler.reconcile(mock_db, {"status": "paid"})

    assert not outcome.matched
    assert outcome.transaction_id is None
    assert outcome.event_type == "unknown"
    assert outcome.order_id == ""
