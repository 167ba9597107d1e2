"""Tests for the signed processor HTTP client."""

import json

import httpx
import pytest
from paygate.services.processor_client import ProcessorClient, ProcessorUnavailableError
from paygate.services.signing import build_raw_message, sign


def _client(handler) -> ProcessorClient:
    return ProcessorClient(
        api_key="k",
        api_secret="s",
        checkout_url="https://proc.test/checkouts",
        order_details_url="https://proc.test/orders/",
        transport=httpx.MockTransport(handler),
    )


class TestCreateCheckout:
    @pytest.mark.asyncio
    async def test_sends_signed_post(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"orderId": "X1"})

        client = _client(handler)
        response = await client.create_checkout({"storeId": "s1"}, client_request_id="crid-1")
        await client.close()

        assert response.ok
        assert response.status_code == 201
        assert response.data == {"orderId": "X1"}
        assert response.client_request_id == "crid-1"

        request = seen[0]
        assert request.content == b'{"storeId":"s1"}'
        assert request.headers["Client-Request-Id"] == "crid-1"
        expected = sign("s", build_raw_message("k", "crid-1", request.headers["Timestamp"], request.content))
        assert request.headers["Message-Signature"] == expected

    @pytest.mark.asyncio
    async def test_error_status_is_returned_not_raised(self):
        client = _client(lambda request: httpx.Response(400, json={"error": "bad"}))
        response = await client.create_checkout({})
        await client.close()

        assert not response.ok
        assert response.status_code == 400
        assert response.data == {"error": "bad"}

    @pytest.mark.asyncio
    async def test_non_json_body_falls_back_to_text(self):
        client = _client(lambda request: httpx.Response(502, text="Bad Gateway"))
        response = await client.create_checkout({})
        await client.close()

        assert response.data == "Bad Gateway"
        assert response.text == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_transport_error_raises_unavailable(self):
        def handler(request):
            raise httpx.ConnectTimeout("timeout")

        client = _client(handler)
        with pytest.raises(ProcessorUnavailableError):
            await client.create_checkout({})
        await client.close()


class TestGetOrder:
    @pytest.mark.asyncio
    async def test_get_has_no_body_and_joined_url(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"status": "APPROVED"})

        client = _client(handler)
        response = await client.get_order("ORD/1")
        await client.close()

        assert response.data == {"status": "APPROVED"}
        request = seen[0]
        assert request.method == "GET"
        assert request.content == b""
        assert request.url.raw_path.decode() == "/orders/ORD%2F1"
        expected = sign(
            "s",
            build_raw_message("k", request.headers["Client-Request-Id"], request.headers["Timestamp"]),
        )
        assert request.headers["Message-Signature"] == expected


def test_signed_headers_layout():
    client = ProcessorClient(
        api_key="k",
        api_secret="s",
        checkout_url="https://proc.test/checkouts",
        order_details_url="https://proc.test/orders",
    )
    headers = client.signed_headers("crid", "1700000000000", json.dumps({"a": 1}).encode())
    assert set(headers) == {
        "Api-Key",
        "Client-Request-Id",
        "Timestamp",
        "Message-Signature",
        "Content-Type",
    }
    assert headers["Timestamp"] == "1700000000000"
