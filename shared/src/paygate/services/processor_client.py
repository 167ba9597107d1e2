"""Signed HTTP client for the payment processor API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from paygate.config import Settings
from paygate.services.signing import (
    build_raw_message,
    epoch_millis,
    new_client_request_id,
    serialize_body,
    sign,
)

logger = logging.getLogger(__name__)


class ProcessorUnavailableError(RuntimeError):
    """The processor could not be reached or did not answer in time."""


@dataclass
class ProcessorResponse:
    status_code: int
    data: Any
    text: str
    client_request_id: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class ProcessorClient:
    """Builds signed requests and sends them to the processor.

    HTTP error responses are returned as :class:`ProcessorResponse` objects so
    callers can forward the processor's own status and body. Only failures
    below the HTTP layer raise :class:`ProcessorUnavailableError`.
    """

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        checkout_url: str,
        order_details_url: str,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_secret = api_secret
        self._checkout_url = checkout_url
        self._order_details_url = order_details_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ProcessorClient:
        return cls(
            api_key=settings.processor_api_key,
            api_secret=settings.processor_api_secret,
            checkout_url=settings.checkout_url,
            order_details_url=settings.order_details_url,
            timeout=settings.processor_timeout_seconds,
            transport=transport,
        )

    def signed_headers(
        self,
        client_request_id: str,
        timestamp: str,
        body: bytes = b"",
    ) -> dict[str, str]:
        raw_message = build_raw_message(self._api_key, client_request_id, timestamp, body)
        return {
            "Api-Key": self._api_key,
            "Client-Request-Id": client_request_id,
            "Timestamp": timestamp,
            "Message-Signature": sign(self._api_secret, raw_message),
            "Content-Type": "application/json",
        }

    async def create_checkout(
        self,
        payload: dict[str, Any],
        *,
        client_request_id: str | None = None,
    ) -> ProcessorResponse:
        body = serialize_body(payload)
        return await self._send(
            "POST",
            self._checkout_url,
            body=body,
            client_request_id=client_request_id or new_client_request_id(),
        )

    async def get_order(
        self,
        order_id: str,
        *,
        client_request_id: str | None = None,
    ) -> ProcessorResponse:
        url = f"{self._order_details_url}/{quote(order_id, safe='')}"
        return await self._send(
            "GET",
            url,
            body=b"",
            client_request_id=client_request_id or new_client_request_id(),
        )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        body: bytes,
        client_request_id: str,
    ) -> ProcessorResponse:
        # One timestamp for both the header and the signed message.
        timestamp = epoch_millis()
        headers = self.signed_headers(client_request_id, timestamp, body)

        logger.info(
            "Processor request %s %s client_request_id=%s",
            method,
            url,
            client_request_id,
        )
        try:
            response = await self._client.request(
                method,
                url,
                content=body or None,
                headers=headers,
            )
        except httpx.RequestError as exc:
            logger.warning(
                "Processor request failed %s %s client_request_id=%s: %s",
                method,
                url,
                client_request_id,
                exc.__class__.__name__,
            )
            raise ProcessorUnavailableError("Payment processor unavailable") from exc

        try:
            data: Any = response.json()
        except ValueError:
            data = response.text

        log = logger.info if response.is_success else logger.warning
        log(
            "Processor response %s %s status=%s client_request_id=%s",
            method,
            url,
            response.status_code,
            client_request_id,
        )
        return ProcessorResponse(
            status_code=response.status_code,
            data=data,
            text=response.text,
            client_request_id=client_request_id,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
