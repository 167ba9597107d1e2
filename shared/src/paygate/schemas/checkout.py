"""Pydantic schemas for processor checkout payloads.

Field names mirror the processor's wire format (camelCase) so a validated
payload can be dumped and forwarded without renaming.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

_EMAIL_ADAPTER = TypeAdapter(EmailStr)


def _checked_email(value: str) -> str:
    # Validate only; the caller's spelling is forwarded untouched.
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except ValidationError as exc:
        raise ValueError("value is not a valid email address") from exc
    return value


CallerEmail = Annotated[str, AfterValidator(_checked_email)]


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class TransactionAmount(_WireModel):
    total: int | float
    currency: str = Field(min_length=1)

    @field_validator("total", mode="before")
    @classmethod
    def _reject_bool(cls, value):
        # bool is an int subclass and would otherwise coerce to 1 or 0.
        if isinstance(value, bool):
            raise ValueError("total must be a number")
        return value


class RedirectBackUrls(_WireModel):
    successUrl: str | None = None
    failureUrl: str | None = None


class CheckoutSettings(_WireModel):
    """Caller-supplied values here are always replaced server side."""
    webHooksUrl: str | None = None
    redirectBackUrls: RedirectBackUrls | None = None


class OrderDetails(_WireModel):
    invoiceNumber: str


class BillingPerson(_WireModel):
    firstName: str
    lastName: str


class BillingContact(_WireModel):
    mobilePhone: str
    email: CallerEmail


class BillingAddress(_WireModel):
    address1: str
    city: str
    country: str
    postalCode: str


class Billing(_WireModel):
    person: BillingPerson
    contact: BillingContact
    address: BillingAddress


class Order(_WireModel):
    orderId: str
    orderDetails: OrderDetails
    billing: Billing


class CheckoutRequest(_WireModel):
    """Checkout payload accepted from gateway callers."""
    storeId: str
    transactionType: str
    transactionOrigin: str
    transactionAmount: TransactionAmount
    checkoutSettings: CheckoutSettings | None = None
    order: Order

    def to_wire(self) -> dict:
        """Dump back to the processor's JSON shape, omitting unset fields."""
        return self.model_dump(mode="json", exclude_unset=True)
