"""Payment model — one row per gateway payment attempt."""

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from synka.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Immutable ledger entry for a captured or failed payment.

    ``razorpay_payment_id`` is UNIQUE: it is the idempotency key for
    at-least-once webhook delivery.
    """

    __tablename__ = "payments"

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
    )

    razorpay_payment_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    razorpay_order_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR", server_default="INR")
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # captured, failed
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_description: Mapped[str | None] = mapped_column(String(512), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, razorpay_payment_id={self.razorpay_payment_id}, status={self.status})>"
