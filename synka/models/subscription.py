"""Subscription model — Razorpay recurring billing state per user."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Numeric, String, false, true
from sqlalchemy.orm import Mapped, mapped_column

from synka.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A recurring billing agreement (e-mandate) for one user.

    Rows are never deleted; a superseded agreement is marked ``replaced``.
    """

    __tablename__ = "subscriptions"

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    # Plan & lifecycle
    plan_type: Mapped[str] = mapped_column(String(20), nullable=False)  # monthly, annually
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", server_default="pending")
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True, default="pending", server_default="pending")
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, server_default="0")

    # Billing period
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)
    current_period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(nullable=True)

    # Mandate / renewal
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    mandate_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    mandate_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Razorpay identifiers
    razorpay_subscription_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    razorpay_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Gateway timestamp of the most recent event applied to this row
    last_event_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, payment_status={self.payment_status})>"
        )
