"""Order model — one-time purchases such as physical NFC/PVC cards."""

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from synka.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Order(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A one-time purchase paid through a Razorpay order."""

    __tablename__ = "orders"

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    order_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    product_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False, default=1)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, server_default="0")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR", server_default="INR")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", server_default="pending")

    razorpay_order_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    razorpay_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, razorpay_order_id={self.razorpay_order_id}, status={self.status})>"
