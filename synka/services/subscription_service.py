"""Subscription service — lookups used by the webhook reconciler and sweep."""

import uuid
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from synka.billing.state import SubscriptionStatus
from synka.models.subscription import Subscription


async def get_subscription_by_razorpay_id(
    db: AsyncSession, razorpay_subscription_id: str
) -> Subscription | None:
    """Look up subscription by Razorpay subscription ID (used by webhooks)."""
    result = await db.execute(
        select(Subscription).where(
            Subscription.razorpay_subscription_id == razorpay_subscription_id
        )
    )
    return result.scalar_one_or_none()


async def list_lapsed_cancellations(
    db: AsyncSession, now: datetime
) -> list[Subscription]:
    """Cancelled subscriptions whose paid period has ended.

    These are rows the gateway will send no further terminal event for:
    renewal is off, the row is paused or carries a cancellation, and
    ``end_date`` is past.
    """
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.auto_renew.is_(False),
            Subscription.end_date < now,
            or_(
                Subscription.status == SubscriptionStatus.PAUSED.value,
                and_(
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                    Subscription.cancelled_at.is_not(None),
                ),
            ),
        )
        .order_by(Subscription.end_date)
    )
    return list(result.scalars().all())


async def has_other_live_subscription(
    db: AsyncSession, user_id: uuid.UUID, exclude_id: uuid.UUID, now: datetime
) -> bool:
    """Whether the user holds another subscription that still grants access."""
    result = await db.execute(
        select(Subscription.id)
        .where(
            Subscription.user_id == user_id,
            Subscription.id != exclude_id,
            Subscription.status.in_(
                [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAUSED.value]
            ),
            Subscription.end_date >= now,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None
