"""Razorpay event vocabulary and payload parsing.

The body is parsed only after its signature has been verified. Each event
type maps to exactly one typed variant; a payload missing the entity its
variant needs is rejected here instead of deep inside a handler.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from synka.exceptions import WebhookPayloadError
from synka.schemas.webhook import (
    OrderEntity,
    OrderEvent,
    PaymentEntity,
    PaymentEvent,
    SubscriptionEntity,
    SubscriptionEvent,
    WebhookEnvelope,
    WebhookEvent,
)

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Closed set of Razorpay events this service acts on."""

    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    ORDER_PAID = "order.paid"
    SUBSCRIPTION_AUTHENTICATED = "subscription.authenticated"
    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_CHARGED = "subscription.charged"
    SUBSCRIPTION_PENDING = "subscription.pending"
    SUBSCRIPTION_PAUSED = "subscription.paused"
    SUBSCRIPTION_RESUMED = "subscription.resumed"
    SUBSCRIPTION_HALTED = "subscription.halted"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_COMPLETED = "subscription.completed"


PAYMENT_EVENTS = frozenset({EventType.PAYMENT_CAPTURED, EventType.PAYMENT_FAILED})
ORDER_EVENTS = frozenset({EventType.ORDER_PAID})
SUBSCRIPTION_EVENTS = frozenset(
    event for event in EventType if event.value.startswith("subscription.")
)


def _entity(payload: dict[str, Any], key: str, event_type: str) -> dict[str, Any]:
    """Return ``payload[key]["entity"]`` or raise if it is missing."""
    wrapper = payload.get(key)
    if not isinstance(wrapper, dict) or not isinstance(wrapper.get("entity"), dict):
        raise WebhookPayloadError(f"Missing payload.{key}.entity", event_type=event_type)
    return wrapper["entity"]


def decode_envelope(body: bytes) -> WebhookEnvelope:
    """Decode the raw body into the top-level envelope."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise WebhookPayloadError("Body is not valid JSON") from e

    if not isinstance(data, dict):
        raise WebhookPayloadError("Body is not a JSON object")

    try:
        return WebhookEnvelope.model_validate(data)
    except ValidationError as e:
        raise WebhookPayloadError(f"Invalid webhook envelope: {e.error_count()} error(s)") from e


def parse_event(body: bytes) -> WebhookEvent | None:
    """Parse a verified webhook body into a typed event.

    Returns:
        The typed event, or None if the event type is not one we handle

    Raises:
        WebhookPayloadError: malformed JSON, envelope, or entity
    """
    envelope = decode_envelope(body)

    try:
        event_type = EventType(envelope.event)
    except ValueError:
        logger.info("Unhandled Razorpay event type: %s", envelope.event)
        return None

    payload = envelope.payload
    try:
        if event_type in PAYMENT_EVENTS:
            return PaymentEvent(
                event_type=event_type.value,
                created_at=envelope.created_at,
                payment=PaymentEntity.model_validate(_entity(payload, "payment", event_type.value)),
            )

        if event_type in ORDER_EVENTS:
            return OrderEvent(
                event_type=event_type.value,
                created_at=envelope.created_at,
                order=OrderEntity.model_validate(_entity(payload, "order", event_type.value)),
            )

        payment = None
        if isinstance(payload.get("payment"), dict) and "entity" in payload["payment"]:
            payment = PaymentEntity.model_validate(payload["payment"]["entity"])
        return SubscriptionEvent(
            event_type=event_type.value,
            created_at=envelope.created_at,
            subscription=SubscriptionEntity.model_validate(
                _entity(payload, "subscription", event_type.value)
            ),
            payment=payment,
        )
    except ValidationError as e:
        raise WebhookPayloadError(
            f"Invalid {event_type.value} entity: {e.error_count()} error(s)",
            event_type=event_type.value,
        ) from e
