"""Pydantic v2 request/response schemas for the checkout callback."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

# --- Request schemas ---


class VerifyPaymentRequest(BaseModel):
    """Values Razorpay Checkout hands back to the client after payment."""

    type: Literal["order", "subscription"]
    razorpay_payment_id: str
    razorpay_signature: str
    razorpay_order_id: str | None = None
    razorpay_subscription_id: str | None = None

    @property
    def gateway_id(self) -> str | None:
        """The id the signature covers together with the payment id."""
        if self.type == "subscription":
            return self.razorpay_subscription_id
        return self.razorpay_order_id


# --- Response schemas ---


class VerifiedOrder(BaseModel):
    id: str
    order_number: str | None
    status: str


class VerifiedSubscription(BaseModel):
    id: str
    plan_type: str
    status: str
    end_date: datetime


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str
    order: VerifiedOrder | None = None
    subscription: VerifiedSubscription | None = None
