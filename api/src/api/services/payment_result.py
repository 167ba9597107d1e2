"""Structured outcome of a processor-facing operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from paygate.services.processor_client import ProcessorResponse

UNAVAILABLE_MESSAGE = "Payment processor unavailable"
REJECTED_MESSAGE = "Payment processor returned an error"


@dataclass
class PaymentResult:
    status_code: int
    data: Any
    ok: bool
    reachable: bool = True

    @classmethod
    def from_response(cls, response: ProcessorResponse) -> PaymentResult:
        return cls(status_code=response.status_code, data=response.data, ok=response.ok)

    @classmethod
    def processor_unavailable(cls) -> PaymentResult:
        return cls(
            status_code=500,
            data={"error": UNAVAILABLE_MESSAGE},
            ok=False,
            reachable=False,
        )

    def to_content(self) -> Any:
        """Body for the gateway caller: processor body on success, error envelope otherwise."""
        if self.ok or not self.reachable:
            return self.data
        return {"error": REJECTED_MESSAGE, "status": self.status_code, "data": self.data}
