"""Grace-period expiry — downgrade users whose cancelled period has ended.

A cancelled or paused subscription keeps paid access until ``end_date`` and
the gateway sends nothing when that date passes, so this sweep closes the
loop. It is safe to run repeatedly: expired rows are not selected again.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from synka.billing.state import SubscriptionStatus, utcnow, validate_subscription_state
from synka.services.entitlement_service import downgrade_to_free
from synka.services.subscription_service import (
    has_other_live_subscription,
    list_lapsed_cancellations,
)

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one expiry sweep."""

    expired: list[str] = field(default_factory=list)  # subscription ids
    downgraded: int = 0


async def sweep_expired_subscriptions(
    db: AsyncSession, now: datetime | None = None
) -> SweepResult:
    """Mark lapsed subscriptions ``expired`` and downgrade their users.

    The caller owns the transaction and commits on success.
    """
    now = now or utcnow()
    result = SweepResult()

    for subscription in await list_lapsed_cancellations(db, now):
        subscription.status = SubscriptionStatus.EXPIRED.value
        subscription.auto_renew = False
        validate_subscription_state(subscription)
        await db.flush()

        result.expired.append(str(subscription.id))

        if await has_other_live_subscription(db, subscription.user_id, subscription.id, now):
            logger.info(
                "Subscription %s expired, user %s keeps access through another subscription",
                subscription.id,
                subscription.user_id,
            )
            continue

        if await downgrade_to_free(db, subscription.user_id):
            result.downgraded += 1
        logger.info(
            "Subscription %s expired (end_date=%s), user %s downgraded",
            subscription.id,
            subscription.end_date.isoformat(),
            subscription.user_id,
        )

    logger.info(
        "Expiry sweep finished: %d expired, %d downgraded",
        len(result.expired),
        result.downgraded,
    )
    return result
