"""FastAPI dependency injection."""

from __future__ import annotations

import hmac
from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from paygate.config import Settings
from paygate.database import get_session_factory
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.checkout_service import CheckoutService
from api.services.order_service import OrderQueryService
from api.services.webhook_service import WebhookReconciler

API_KEY_HEADER_NAME = "x-api-key"


class GatewayAuthError(Exception):
    """Rejected gateway call; rendered as ``{"status", "error"}`` JSON."""

    def __init__(self, status_code: int, status: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status = status
        self.message = message


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_checkout_service(request: Request) -> CheckoutService:
    state = request.app.state
    return CheckoutService(state.settings, state.processor, state.telemetry, state.dispatcher)


def get_order_service(request: Request) -> OrderQueryService:
    state = request.app.state
    return OrderQueryService(state.processor, state.telemetry, state.dispatcher)


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    state = request.app.state
    return WebhookReconciler(state.crm, state.dispatcher)


def _key_matches(candidate: str, valid_keys: list[str]) -> bool:
    matched = False
    for key in valid_keys:
        if hmac.compare_digest(candidate.encode(), key.encode()):
            matched = True
    return matched


def require_gateway_api_key(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> str:
    valid_keys = settings.gateway_api_key_list
    if not valid_keys:
        raise GatewayAuthError(500, "error", "Server misconfiguration: No API keys set")

    supplied = request.headers.get(API_KEY_HEADER_NAME, "")
    if not supplied or not _key_matches(supplied, valid_keys):
        raise GatewayAuthError(401, "fail", "Unauthorized: Invalid or missing API key")
    return supplied
