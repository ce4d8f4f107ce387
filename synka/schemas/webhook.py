"""Pydantic v2 schemas for Razorpay webhook payloads.

Only the fields the reconciler reads are declared; everything else the
gateway sends is ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class _Entity(BaseModel):
    model_config = ConfigDict(extra="ignore")


# --- Entities ---


class PaymentEntity(_Entity):
    """``payload.payment.entity``."""

    id: str
    amount: int = 0  # in paise (e.g., 9900 = ₹99.00)
    currency: str = "INR"
    status: str | None = None
    method: str | None = None
    order_id: str | None = None
    subscription_id: str | None = None
    invoice_id: str | None = None
    error_code: str | None = None
    error_description: str | None = None


class OrderEntity(_Entity):
    """``payload.order.entity``."""

    id: str
    amount: int = 0
    status: str | None = None


class SubscriptionEntity(_Entity):
    """``payload.subscription.entity``."""

    id: str
    status: str | None = None
    plan_id: str | None = None
    customer_id: str | None = None
    current_start: int | None = None  # unix seconds
    current_end: int | None = None  # unix seconds
    cancelled_by: str | None = None  # user, bank, system


# --- Envelope ---


class WebhookEnvelope(BaseModel):
    """Top-level webhook body: ``{event, created_at, payload}``."""

    model_config = ConfigDict(extra="ignore")

    event: str
    created_at: int | None = None  # unix seconds, set by the gateway
    payload: dict[str, Any] = {}


# --- Parsed events (one variant per entity family) ---


class _BaseEvent(BaseModel):
    event_type: str
    created_at: int | None = None


class PaymentEvent(_BaseEvent):
    """payment.captured / payment.failed."""

    payment: PaymentEntity


class OrderEvent(_BaseEvent):
    """order.paid."""

    order: OrderEntity


class SubscriptionEvent(_BaseEvent):
    """subscription.* — ``payment`` accompanies charged events."""

    subscription: SubscriptionEntity
    payment: PaymentEntity | None = None


WebhookEvent = PaymentEvent | OrderEvent | SubscriptionEvent
