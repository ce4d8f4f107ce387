"""Payment and order service — ledger inserts and one-time order updates."""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from synka.billing.idempotency import claim_payment
from synka.models.order import Order
from synka.models.payment import Payment
from synka.schemas.webhook import PaymentEntity

logger = logging.getLogger(__name__)


def paise_to_rupees(amount: int) -> Decimal:
    """Razorpay amounts are in the smallest currency unit."""
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


async def get_order_by_razorpay_id(
    db: AsyncSession, razorpay_order_id: str
) -> Order | None:
    """Look up order by Razorpay order ID (used by webhooks)."""
    result = await db.execute(
        select(Order).where(Order.razorpay_order_id == razorpay_order_id)
    )
    return result.scalar_one_or_none()


async def update_order_status(
    db: AsyncSession, order: Order, status: str, razorpay_payment_id: str
) -> Order:
    """Set an order to ``paid`` or ``failed`` for the given payment."""
    order.status = status
    order.razorpay_payment_id = razorpay_payment_id
    await db.flush()
    logger.info("Order %s marked %s (payment %s)", order.razorpay_order_id, status, razorpay_payment_id)
    return order


async def record_payment(
    db: AsyncSession,
    *,
    entity: PaymentEntity,
    status: str,
    user_id: uuid.UUID,
    order_id: uuid.UUID | None = None,
    subscription_id: uuid.UUID | None = None,
) -> Payment:
    """Insert the ledger row for a captured or failed payment.

    Raises:
        DuplicatePaymentError: the payment id is already recorded
    """
    payment = Payment(
        user_id=user_id,
        order_id=order_id,
        subscription_id=subscription_id,
        razorpay_payment_id=entity.id,
        razorpay_order_id=entity.order_id,
        amount=paise_to_rupees(entity.amount),
        currency=entity.currency,
        status=status,
        method=entity.method,
        error_code=entity.error_code if status == "failed" else None,
        error_description=entity.error_description if status == "failed" else None,
    )
    await claim_payment(db, payment)
    logger.info(
        "Recorded %s payment %s (%s %s)",
        status,
        entity.id,
        payment.amount,
        payment.currency,
    )
    return payment
