"""Payment gateway endpoints."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from paygate.schemas.checkout import CheckoutRequest
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_checkout_service,
    get_db,
    get_order_service,
    get_webhook_reconciler,
    require_gateway_api_key,
)
from api.middleware.rate_limit import resolve_client_ip
from api.services.checkout_service import CheckoutService
from api.services.order_service import OrderQueryService
from api.services.redirect_pages import render_failure_page, render_success_page
from api.services.webhook_service import WebhookReconciler

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/initiate", dependencies=[Depends(require_gateway_api_key)])
async def initiate_payment(
    req: CheckoutRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Sign and forward a checkout to the processor."""
    result = await service.initiate(
        db,
        req.to_wire(),
        ip_address=resolve_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return JSONResponse(status_code=result.status_code, content=result.to_content())


@router.get("/order/{order_id}", dependencies=[Depends(require_gateway_api_key)])
async def get_order_details(
    order_id: str,
    service: OrderQueryService = Depends(get_order_service),
):
    if not order_id.strip():
        raise HTTPException(status_code=400, detail="orderId is required")
    result = await service.get_order(order_id.strip())
    return JSONResponse(status_code=result.status_code, content=result.to_content())


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """Processor callback. Unauthenticated: the processor holds no gateway key."""
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    await reconciler.reconcile(db, payload)
    return {"status": "ok"}


# Redirect pages only render. Stored status and the CRM follow the webhook.
@router.get("/success", response_class=HTMLResponse)
async def payment_success(order_id: str | None = Query(default=None, alias="orderId")):
    logger.info("Buyer returned from checkout: success order_id=%s", order_id)
    return HTMLResponse(render_success_page(order_id))


@router.get("/failure", response_class=HTMLResponse)
async def payment_failure(order_id: str | None = Query(default=None, alias="orderId")):
    logger.info("Buyer returned from checkout: failure order_id=%s", order_id)
    return HTMLResponse(render_failure_page(order_id))
