"""SQLAlchemy ORM models for Paygate."""

from paygate.models.base import Base
from paygate.models.payment_transaction import PaymentTransaction
from paygate.models.webhook_event import WebhookEvent

__all__ = [
    "Base",
    "PaymentTransaction",
    "WebhookEvent",
]
