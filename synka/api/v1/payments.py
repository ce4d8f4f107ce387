"""Checkout callback endpoint — verifies the client-reported payment signature."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from synka.billing.checkout import (
    CheckoutTarget,
    confirm_checkout_payment,
    find_checkout_target,
)
from synka.billing.signature import verify_payment_signature
from synka.database import get_session_factory
from synka.exceptions import DuplicatePaymentError
from synka.models.order import Order
from synka.schemas.payment import (
    VerifiedOrder,
    VerifiedSubscription,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    body: VerifyPaymentRequest,
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> VerifyPaymentResponse:
    """Verify a Razorpay Checkout signature and apply the payment.

    The webhook stays the source of truth; this only lets the client see the
    paid plan without waiting for it.
    """
    key_secret = request.app.state.settings.razorpay_key_secret
    if not key_secret:
        logger.error("RAZORPAY_KEY_SECRET not configured, rejecting checkout callback")

    if not verify_payment_signature(
        body.gateway_id or "", body.razorpay_payment_id, body.razorpay_signature, key_secret
    ):
        logger.warning("Checkout signature verification failed (payment %s)", body.razorpay_payment_id)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    async with session_factory() as db:
        target = await find_checkout_target(db, body)
        if target is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{body.type.capitalize()} not found",
            )

        try:
            await confirm_checkout_payment(db, body, target)
            await db.commit()
        except DuplicatePaymentError:
            # The webhook won the race and already applied this payment
            await db.rollback()
            target = await find_checkout_target(db, body)
        except Exception:
            await db.rollback()
            logger.exception(
                "Error applying checkout payment %s for %s %s",
                body.razorpay_payment_id,
                body.type,
                body.gateway_id,
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Payment verification failed",
            )

    return _response(target)


def _response(target: CheckoutTarget) -> VerifyPaymentResponse:
    if isinstance(target, Order):
        return VerifyPaymentResponse(
            message="Payment verified successfully",
            order=VerifiedOrder(
                id=str(target.id),
                order_number=target.order_number,
                status=target.status,
            ),
        )
    return VerifyPaymentResponse(
        message="Subscription activated successfully",
        subscription=VerifiedSubscription(
            id=str(target.id),
            plan_type=target.plan_type,
            status=target.status,
            end_date=target.end_date,
        ),
    )
