"""Subscription lifecycle state machine.

The per-event effects on a subscription row are expressed as data
(``SUBSCRIPTION_TRANSITIONS``) so that handlers share one code path for
"set to target state" updates. Every write is checked by
``validate_subscription_state`` before it is flushed.

Cancelled is NOT terminal: a cancelled subscription keeps paid access until
its ``end_date``. Halted and completed are terminal and revoke access.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from synka.billing.events import EventType
from synka.billing.plans import get_billing_cycle
from synka.exceptions import InvalidSubscriptionStateError
from synka.models.subscription import Subscription

logger = logging.getLogger(__name__)


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    HALTED = "halted"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    EXPIRED = "expired"
    REPLACED = "replaced"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    ADMIN = "admin"


class Entitlement(str, Enum):
    """Side effect on the user's plan after a transition."""

    NONE = "none"
    ACTIVATE = "activate"
    DOWNGRADE = "downgrade"


TERMINAL_STATUSES = frozenset({SubscriptionStatus.HALTED, SubscriptionStatus.COMPLETED})

# Statuses under which the mandate can no longer renew
NON_RENEWING_STATUSES = frozenset(
    {
        SubscriptionStatus.PAUSED,
        SubscriptionStatus.HALTED,
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.COMPLETED,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.REPLACED,
    }
)

# Events allowed to move a subscription out of a terminal status
SUPERSEDING_EVENTS = frozenset(
    {
        EventType.SUBSCRIPTION_AUTHENTICATED,
        EventType.SUBSCRIPTION_ACTIVATED,
        EventType.SUBSCRIPTION_RESUMED,
    }
)

# Events that put a subscription into a terminal status; always re-appliable
TERMINATING_EVENTS = frozenset({EventType.SUBSCRIPTION_HALTED, EventType.SUBSCRIPTION_COMPLETED})

HALTED_REASON = "Payment failed after all retries"
PENDING_REASON = "Payment retry in progress"

_CANCELLATION_REASONS = {
    "bank": "E-mandate cancelled by bank",
    "user": "Cancelled by user",
}
_DEFAULT_CANCELLATION_REASON = "E-mandate cancelled via Razorpay"


@dataclass(frozen=True)
class Transition:
    """Target values an event writes onto a subscription row.

    ``None`` means "leave the column unchanged".
    """

    status: SubscriptionStatus | None = None
    payment_status: PaymentStatus | None = None
    auto_renew: bool | None = None
    mandate_created: bool | None = None
    clear_cancellation: bool = False
    mark_cancelled: bool = False
    entitlement: Entitlement = Entitlement.NONE


SUBSCRIPTION_TRANSITIONS: dict[EventType, Transition] = {
    EventType.PAYMENT_CAPTURED: Transition(
        status=SubscriptionStatus.ACTIVE,
        payment_status=PaymentStatus.PAID,
        entitlement=Entitlement.ACTIVATE,
    ),
    EventType.PAYMENT_FAILED: Transition(payment_status=PaymentStatus.FAILED),
    EventType.SUBSCRIPTION_AUTHENTICATED: Transition(
        status=SubscriptionStatus.ACTIVE,
        auto_renew=True,
        mandate_created=True,
        clear_cancellation=True,
        entitlement=Entitlement.ACTIVATE,
    ),
    EventType.SUBSCRIPTION_ACTIVATED: Transition(
        status=SubscriptionStatus.ACTIVE,
        payment_status=PaymentStatus.PAID,
        auto_renew=True,
        mandate_created=True,
        clear_cancellation=True,
        entitlement=Entitlement.ACTIVATE,
    ),
    EventType.SUBSCRIPTION_CHARGED: Transition(
        status=SubscriptionStatus.ACTIVE,
        payment_status=PaymentStatus.PAID,
        entitlement=Entitlement.ACTIVATE,
    ),
    EventType.SUBSCRIPTION_PENDING: Transition(payment_status=PaymentStatus.PENDING),
    EventType.SUBSCRIPTION_PAUSED: Transition(
        status=SubscriptionStatus.PAUSED,
        auto_renew=False,
    ),
    EventType.SUBSCRIPTION_RESUMED: Transition(
        status=SubscriptionStatus.ACTIVE,
        auto_renew=True,
        clear_cancellation=True,
        entitlement=Entitlement.ACTIVATE,
    ),
    EventType.SUBSCRIPTION_HALTED: Transition(
        status=SubscriptionStatus.HALTED,
        payment_status=PaymentStatus.FAILED,
        auto_renew=False,
        mark_cancelled=True,
        entitlement=Entitlement.DOWNGRADE,
    ),
    EventType.SUBSCRIPTION_CANCELLED: Transition(
        auto_renew=False,
        mark_cancelled=True,
    ),
    EventType.SUBSCRIPTION_COMPLETED: Transition(
        status=SubscriptionStatus.COMPLETED,
        auto_renew=False,
        entitlement=Entitlement.DOWNGRADE,
    ),
}


# ---------------------------------------------------------------------------
# Time helpers (naive UTC, matching the DB columns)
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_unix(ts: int | None) -> datetime | None:
    """Convert a gateway unix timestamp to naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def cancellation_reason(cancelled_by: str | None) -> str:
    """Human-readable reason keyed off the entity's ``cancelled_by``."""
    return _CANCELLATION_REASONS.get(cancelled_by or "", _DEFAULT_CANCELLATION_REASON)


def is_replay(subscription: Subscription, event_at: datetime | None) -> bool:
    """Whether an event carries the same stamp as the last one applied."""
    last = subscription.last_event_at
    return event_at is not None and last is not None and event_at <= last


def renewal_end_date(
    subscription: Subscription,
    current_end: datetime | None,
    event_at: datetime | None = None,
) -> datetime:
    """New end date after a renewal charge.

    The gateway's ``current_end`` wins. Otherwise one billing cycle is added
    to the existing end date, unless the charge was already applied.
    """
    if current_end is not None:
        return current_end
    if is_replay(subscription, event_at):
        return subscription.end_date
    return subscription.end_date + get_billing_cycle(subscription.plan_type)


def is_stale(
    subscription: Subscription, event_type: EventType, event_at: datetime | None
) -> bool:
    """Whether an event is older than what the row already reflects.

    An event stamped before ``last_event_at`` is stale. Once the row is
    halted or completed, anything other than a superseding or terminating
    event must carry a strictly newer timestamp to be applied.
    """
    last = subscription.last_event_at
    if event_at is not None and last is not None and event_at < last:
        return True

    if (
        subscription.status in {s.value for s in TERMINAL_STATUSES}
        and event_type not in SUPERSEDING_EVENTS
        and event_type not in TERMINATING_EVENTS
    ):
        return event_at is None or last is None or event_at <= last

    return False


def is_applicable(subscription: Subscription, transition: Transition) -> bool:
    """Whether a transition makes sense for the row's current status.

    A halted or completed row keeps its status through events that do not
    set one, so such an event may not rewrite ``payment_status`` either
    (e.g. a retry notice arriving after retries were exhausted).
    """
    if subscription.status not in {s.value for s in TERMINAL_STATUSES}:
        return True
    if transition.status is not None:
        return True
    return transition.payment_status is None or (
        transition.payment_status.value == subscription.payment_status
    )


def apply_transition(
    subscription: Subscription,
    transition: Transition,
    *,
    now: datetime,
    event_at: datetime | None = None,
) -> None:
    """Write the transition's target values onto the row and validate it."""
    if transition.status is not None:
        subscription.status = transition.status.value
    if transition.payment_status is not None:
        subscription.payment_status = transition.payment_status.value
    if transition.auto_renew is not None:
        subscription.auto_renew = transition.auto_renew
    if transition.mandate_created is not None:
        subscription.mandate_created = transition.mandate_created
    if transition.clear_cancellation:
        subscription.cancelled_at = None
        subscription.cancellation_reason = None
    if transition.mark_cancelled:
        subscription.cancelled_at = now
    if event_at is not None and (
        subscription.last_event_at is None or event_at > subscription.last_event_at
    ):
        subscription.last_event_at = event_at

    validate_subscription_state(subscription)


def validate_subscription_state(subscription: Subscription) -> None:
    """Reject combinations the lifecycle never produces.

    Raises:
        InvalidSubscriptionStateError: on an unknown status or an illegal mix
    """
    try:
        status = SubscriptionStatus(subscription.status)
    except ValueError:
        raise InvalidSubscriptionStateError(
            subscription.id, f"unknown status {subscription.status!r}"
        ) from None

    if subscription.payment_status is not None:
        try:
            PaymentStatus(subscription.payment_status)
        except ValueError:
            raise InvalidSubscriptionStateError(
                subscription.id, f"unknown payment_status {subscription.payment_status!r}"
            ) from None

    if subscription.auto_renew and status in NON_RENEWING_STATUSES:
        raise InvalidSubscriptionStateError(
            subscription.id, f"auto_renew must be false when status is {status.value}"
        )
    if subscription.auto_renew and subscription.cancelled_at is not None:
        raise InvalidSubscriptionStateError(
            subscription.id, "auto_renew must be false once cancelled"
        )
    if status is SubscriptionStatus.HALTED and subscription.payment_status != PaymentStatus.FAILED.value:
        raise InvalidSubscriptionStateError(
            subscription.id, "halted subscription must have payment_status=failed"
        )
