"""Webhook idempotency — deduplication keyed on the gateway payment id.

Contract:
- A payment id is recorded at most once in ``payments`` (UNIQUE constraint).
- Handlers call ``is_duplicate_payment`` before any side effect and
  short-circuit when the payment is already known.
- Two deliveries racing past that check collide on the constraint; the loser
  gets ``DuplicatePaymentError`` and its whole transaction is rolled back.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from synka.exceptions import DuplicatePaymentError
from synka.models.payment import Payment

logger = logging.getLogger(__name__)


async def is_duplicate_payment(db: AsyncSession, razorpay_payment_id: str) -> bool:
    """Check if a payment with this gateway id has already been recorded."""
    result = await db.execute(
        select(Payment.id).where(Payment.razorpay_payment_id == razorpay_payment_id).limit(1)
    )
    if result.scalar_one_or_none() is not None:
        logger.info("Duplicate payment skipped: %s", razorpay_payment_id)
        return True
    return False


async def claim_payment(db: AsyncSession, payment: Payment) -> Payment:
    """Insert the payment row, turning a UNIQUE violation into a duplicate signal.

    Raises:
        DuplicatePaymentError: another delivery recorded this payment first.
            The session must be rolled back by the caller.
    """
    db.add(payment)
    try:
        await db.flush()
    except IntegrityError as e:
        logger.info(
            "Payment %s already recorded by a concurrent delivery",
            payment.razorpay_payment_id,
        )
        raise DuplicatePaymentError(payment.razorpay_payment_id) from e
    return payment
