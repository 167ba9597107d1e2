"""Request signing for the payment processor API.

Every outbound call carries a ``Message-Signature`` header computed as
``base64(HMAC-SHA256(secret, apiKey + clientRequestId + timestamp + body))``.
The body bytes that are signed must be the exact bytes transmitted, so callers
serialize once with :func:`serialize_body` and reuse the result.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from typing import Any


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def sign(secret: str | bytes, raw_message: str | bytes) -> str:
    """Return the base64 HMAC-SHA256 signature of ``raw_message``."""
    digest = hmac.new(_to_bytes(secret), _to_bytes(raw_message), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def build_raw_message(
    api_key: str,
    client_request_id: str,
    timestamp: str,
    body: bytes = b"",
) -> bytes:
    return _to_bytes(api_key) + _to_bytes(client_request_id) + _to_bytes(timestamp) + body


def serialize_body(payload: Any) -> bytes:
    """Compact JSON encoding; key order is preserved as constructed."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def epoch_millis() -> str:
    return str(time.time_ns() // 1_000_000)


def new_client_request_id() -> str:
    return str(uuid.uuid4())
