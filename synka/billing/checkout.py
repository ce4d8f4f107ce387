"""Checkout callback — apply a client-reported payment before its webhook arrives.

Razorpay Checkout returns ``payment_id`` and a signature to the browser. Once
that signature is verified the payment is reconciled exactly as a
``payment.captured`` webhook would be, through the same handler, so whichever
of the two arrives second is a duplicate. The callback carries no gateway
timestamp, so it can never override a halted or completed subscription.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from synka.billing.events import EventType
from synka.billing.webhooks import handle_payment_captured
from synka.models.order import Order
from synka.models.subscription import Subscription
from synka.schemas.payment import VerifyPaymentRequest
from synka.schemas.webhook import PaymentEntity, PaymentEvent
from synka.services.payment_service import get_order_by_razorpay_id
from synka.services.subscription_service import get_subscription_by_razorpay_id

logger = logging.getLogger(__name__)

CheckoutTarget = Order | Subscription


async def find_checkout_target(
    db: AsyncSession, request: VerifyPaymentRequest
) -> CheckoutTarget | None:
    """The local order or subscription a checkout callback refers to."""
    if request.type == "subscription":
        if not request.razorpay_subscription_id:
            return None
        return await get_subscription_by_razorpay_id(db, request.razorpay_subscription_id)
    if not request.razorpay_order_id:
        return None
    return await get_order_by_razorpay_id(db, request.razorpay_order_id)


async def confirm_checkout_payment(
    db: AsyncSession, request: VerifyPaymentRequest, target: CheckoutTarget
) -> None:
    """Reconcile a verified checkout payment as a captured payment.

    Raises:
        DuplicatePaymentError: a concurrent webhook recorded the payment first
    """
    event = PaymentEvent(
        event_type=EventType.PAYMENT_CAPTURED.value,
        created_at=None,
        payment=PaymentEntity(
            id=request.razorpay_payment_id,
            amount=int(target.amount * 100),  # local rows hold rupees
            order_id=request.razorpay_order_id,
            subscription_id=request.razorpay_subscription_id,
        ),
    )
    logger.info(
        "Checkout callback verified for %s %s (payment %s)",
        request.type,
        request.gateway_id,
        request.razorpay_payment_id,
    )
    await handle_payment_captured(db, event)
