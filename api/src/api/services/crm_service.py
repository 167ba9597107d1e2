"""Salesforce mirroring of payment outcomes.

Best effort by contract: every failure is logged and swallowed, the payment
flow never waits on or fails because of the CRM.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx
from paygate.config import Settings

from api.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

API_VERSION = "v58.0"
TOKEN_EXPIRY_BUFFER_SECONDS = 300

# Account fields receiving the mirrored outcome.
STATUS_FIELD = "Payment_Status__c"
MESSAGE_FIELD = "Payment_Message__c"
REFERENCE_FIELD = "Gateway_Reference__c"


class CrmAuthError(RuntimeError):
    pass


@dataclass
class _AccessToken:
    token: str
    instance_url: str
    expires_at: float


def _soql_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class CrmService:
    def __init__(
        self,
        *,
        enabled: bool,
        base_url: str,
        client_id: str,
        client_secret: str,
        username: str,
        password: str,
        telemetry: TelemetryService | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.enabled = enabled
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._username = username
        self._password = password
        self._telemetry = telemetry
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._access: _AccessToken | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        telemetry: TelemetryService | None = None,
    ) -> CrmService:
        return cls(
            enabled=settings.salesforce_enabled,
            base_url=settings.salesforce_base_url,
            client_id=settings.salesforce_client_id,
            client_secret=settings.salesforce_client_secret,
            username=settings.salesforce_username,
            password=settings.salesforce_password,
            telemetry=telemetry,
        )

    async def _request_token(self, params: dict[str, str]) -> httpx.Response:
        response = await self._client.post(
            f"{self._base_url}/services/oauth2/token",
            data=params,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        response.raise_for_status()
        return response

    async def _get_access_token(self) -> _AccessToken:
        if self._access is not None and time.monotonic() < self._access.expires_at:
            return self._access

        try:
            response = await self._request_token(
                {
                    "grant_type": "password",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "username": self._username,
                    "password": self._password,
                }
            )
        except httpx.HTTPError:
            logger.info("Salesforce password grant failed, trying client credentials grant")
            try:
                response = await self._request_token(
                    {
                        "grant_type": "client_credentials",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    }
                )
            except httpx.HTTPStatusError as exc:
                raise CrmAuthError(_describe_auth_failure(exc.response)) from exc

        body = response.json()
        expires_in = int(body.get("expires_in") or 3600)
        self._access = _AccessToken(
            token=body["access_token"],
            instance_url=str(body["instance_url"]).rstrip("/"),
            expires_at=time.monotonic() + max(expires_in - TOKEN_EXPIRY_BUFFER_SECONDS, 0),
        )
        logger.info("Salesforce authentication succeeded instance=%s", self._access.instance_url)
        return self._access

    async def notify_payment_outcome(
        self,
        order_id: str,
        status: str,
        message: str,
        gateway_reference: str = "",
    ) -> None:
        if not self.enabled:
            logger.debug("Salesforce integration disabled; skipping status for %s", order_id)
            return
        if not order_id:
            return

        try:
            access = await self._get_access_token()
            headers = {
                "Authorization": f"Bearer {access.token}",
                "Content-Type": "application/json",
            }
            query = await self._client.get(
                f"{access.instance_url}/services/data/{API_VERSION}/query",
                params={
                    "q": f"SELECT Id, Name FROM Account WHERE Name = '{_soql_literal(order_id)}' LIMIT 1"
                },
                headers=headers,
            )
            query.raise_for_status()
            records = query.json().get("records") or []
            if not records:
                logger.info("Salesforce account not found for order %s", order_id)
                return

            account_id = records[0]["Id"]
            update = await self._client.patch(
                f"{access.instance_url}/services/data/{API_VERSION}/sobjects/Account/{account_id}",
                json={
                    STATUS_FIELD: status,
                    MESSAGE_FIELD: message,
                    REFERENCE_FIELD: gateway_reference,
                },
                headers=headers,
            )
            update.raise_for_status()
            logger.info("Salesforce payment status mirrored order=%s status=%s", order_id, status)
            if self._telemetry is not None:
                await self._telemetry.record_event(
                    "transaction",
                    transaction_id=gateway_reference,
                    merchant_id=order_id,
                    status="salesforce_updated",
                )
        except Exception as exc:
            logger.warning("Salesforce status update failed for order %s: %s", order_id, exc)
            if self._telemetry is not None:
                await self._telemetry.record_error(exc, "salesforce_payment_update", order_id)

    async def close(self) -> None:
        await self._client.aclose()


def _describe_auth_failure(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if error == "invalid_grant":
        return "Salesforce authentication failed: invalid username or password"
    if error == "invalid_client":
        return "Salesforce authentication failed: invalid client id or secret"
    description = body.get("error_description") if isinstance(body, dict) else None
    return f"Salesforce authentication failed: {description or response.status_code}"
