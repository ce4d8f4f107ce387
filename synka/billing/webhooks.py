"""Razorpay webhook event handlers — reconcile orders, payments, subscriptions.

The gateway's event stream is the source of truth for subscription state.
Every handler writes target values keyed by a gateway id, so replays and
out-of-order deliveries converge instead of compounding.
"""

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from synka.billing.events import EventType
from synka.billing.idempotency import is_duplicate_payment
from synka.billing.state import (
    HALTED_REASON,
    PENDING_REASON,
    SUBSCRIPTION_TRANSITIONS,
    Entitlement,
    apply_transition,
    cancellation_reason,
    from_unix,
    is_applicable,
    is_stale,
    renewal_end_date,
    utcnow,
)
from synka.models.order import Order
from synka.models.subscription import Subscription
from synka.schemas.webhook import OrderEvent, PaymentEvent, SubscriptionEvent, WebhookEvent
from synka.services.entitlement_service import activate_user_subscription, downgrade_to_free
from synka.services.payment_service import (
    get_order_by_razorpay_id,
    record_payment,
    update_order_status,
)
from synka.services.subscription_service import get_subscription_by_razorpay_id

logger = logging.getLogger(__name__)

Mutation = Callable[[Subscription], None]


async def _apply_entitlement(
    db: AsyncSession, subscription: Subscription, entitlement: Entitlement
) -> None:
    if entitlement is Entitlement.ACTIVATE:
        await activate_user_subscription(
            db,
            user_id=subscription.user_id,
            plan_type=subscription.plan_type,
            end_date=subscription.end_date,
        )
    elif entitlement is Entitlement.DOWNGRADE:
        logger.info(
            "Downgrading user %s after subscription %s became %s",
            subscription.user_id,
            subscription.razorpay_subscription_id,
            subscription.status,
        )
        await downgrade_to_free(db, subscription.user_id)


async def _reconcile(
    db: AsyncSession,
    subscription: Subscription,
    event_type: EventType,
    created_at: int | None,
    mutate: Mutation | None = None,
) -> bool:
    """Apply one event's transition to a subscription row.

    Returns False when the event is stale or not applicable and nothing was
    written.
    """
    event_at = from_unix(created_at)
    if is_stale(subscription, event_type, event_at):
        logger.warning(
            "Ignoring stale %s for subscription %s (status=%s, last_event_at=%s, event_at=%s)",
            event_type.value,
            subscription.razorpay_subscription_id,
            subscription.status,
            subscription.last_event_at,
            event_at,
        )
        return False

    transition = SUBSCRIPTION_TRANSITIONS[event_type]
    if not is_applicable(subscription, transition):
        logger.info(
            "Ignoring %s for subscription %s: not applicable to status %s",
            event_type.value,
            subscription.razorpay_subscription_id,
            subscription.status,
        )
        return False

    if mutate is not None:
        mutate(subscription)
    apply_transition(subscription, transition, now=utcnow(), event_at=event_at)
    await db.flush()

    await _apply_entitlement(db, subscription, transition.entitlement)
    return True


async def _find_subscription(db: AsyncSession, event: SubscriptionEvent) -> Subscription | None:
    razorpay_sub_id = event.subscription.id
    subscription = await get_subscription_by_razorpay_id(db, razorpay_sub_id)
    if subscription is None:
        logger.warning(
            "No local subscription found for Razorpay subscription %s (%s)",
            razorpay_sub_id,
            event.event_type,
        )
    return subscription


# ---------------------------------------------------------------------------
# Payment events
# ---------------------------------------------------------------------------


async def _handle_payment(db: AsyncSession, event: PaymentEvent, status: str) -> None:
    """Shared body of payment.captured / payment.failed."""
    event_type = EventType(event.event_type)
    payment = event.payment

    if await is_duplicate_payment(db, payment.id):
        return

    order: Order | None = None
    if payment.order_id:
        order = await get_order_by_razorpay_id(db, payment.order_id)

    subscription: Subscription | None = None
    if payment.subscription_id:
        subscription = await get_subscription_by_razorpay_id(db, payment.subscription_id)

    if order is None and subscription is None:
        logger.warning(
            "Payment %s matches no local order (%s) or subscription (%s), skipping",
            payment.id,
            payment.order_id,
            payment.subscription_id,
        )
        return

    # Ledger row first: it is the idempotency claim for everything below
    owner = order if order is not None else subscription
    await record_payment(
        db,
        entity=payment,
        status=status,
        user_id=owner.user_id,
        order_id=order.id if order is not None else None,
        subscription_id=subscription.id if subscription is not None else None,
    )

    if order is not None:
        await update_order_status(
            db, order, "paid" if status == "captured" else "failed", payment.id
        )

    if subscription is not None:

        def _link_payment(sub: Subscription) -> None:
            sub.razorpay_payment_id = payment.id

        await _reconcile(db, subscription, event_type, event.created_at, _link_payment)


async def handle_payment_captured(db: AsyncSession, event: PaymentEvent) -> None:
    """Handle payment.captured — mark order paid / subscription active, record payment."""
    logger.info(
        "Payment captured: %s (order=%s, subscription=%s)",
        event.payment.id,
        event.payment.order_id,
        event.payment.subscription_id,
    )
    await _handle_payment(db, event, "captured")


async def handle_payment_failed(db: AsyncSession, event: PaymentEvent) -> None:
    """Handle payment.failed — record the failure; a single failure never downgrades."""
    logger.info(
        "Payment failed: %s (error=%s: %s)",
        event.payment.id,
        event.payment.error_code,
        event.payment.error_description,
    )
    await _handle_payment(db, event, "failed")


async def handle_order_paid(db: AsyncSession, event: OrderEvent) -> None:
    """Handle order.paid — informational, payment.captured already did the work."""
    logger.info("Order paid: %s (handled by payment.captured)", event.order.id)


# ---------------------------------------------------------------------------
# Subscription events
# ---------------------------------------------------------------------------


async def _handle_subscription(
    db: AsyncSession, event: SubscriptionEvent, mutate: Mutation | None = None
) -> Subscription | None:
    subscription = await _find_subscription(db, event)
    if subscription is None:
        return None
    applied = await _reconcile(
        db, subscription, EventType(event.event_type), event.created_at, mutate
    )
    return subscription if applied else None


async def handle_subscription_authenticated(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.authenticated — mandate in place, clear stale cancellation."""
    # Resumed subscriptions get this before their first charge; clearing the
    # cancellation here keeps the UI from showing "Cancelled" after re-auth.
    if await _handle_subscription(db, event):
        logger.info("E-mandate authenticated for subscription %s", event.subscription.id)


async def handle_subscription_activated(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.activated — first charge succeeded."""
    current_end = from_unix(event.subscription.current_end)

    def _adopt_period(sub: Subscription) -> None:
        if current_end is not None:
            sub.end_date = current_end
            sub.current_period_end = current_end
        if event.subscription.current_start is not None:
            sub.current_period_start = from_unix(event.subscription.current_start)

    if await _handle_subscription(db, event, _adopt_period):
        logger.info(
            "Subscription activated: %s (current_end=%s)", event.subscription.id, current_end
        )


async def handle_subscription_charged(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.charged — renewal, extend the paid period."""
    current_end = from_unix(event.subscription.current_end)
    event_at = from_unix(event.created_at)

    def _extend_period(sub: Subscription) -> None:
        new_end = renewal_end_date(sub, current_end, event_at)
        sub.end_date = new_end
        sub.current_period_end = new_end
        if event.subscription.current_start is not None:
            sub.current_period_start = from_unix(event.subscription.current_start)

    subscription = await _handle_subscription(db, event, _extend_period)
    if subscription is not None:
        logger.info(
            "Subscription charged (renewal): %s, new end %s",
            event.subscription.id,
            subscription.end_date.isoformat(),
        )


async def handle_subscription_pending(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.pending — retry in progress, user keeps access."""

    def _annotate(sub: Subscription) -> None:
        sub.notes = {**(sub.notes or {}), "pending_reason": PENDING_REASON}

    if await _handle_subscription(db, event, _annotate):
        logger.info("Subscription pending (payment retry in progress): %s", event.subscription.id)


async def handle_subscription_paused(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.paused — no downgrade, access runs to end_date."""
    if await _handle_subscription(db, event):
        logger.info("Subscription paused: %s", event.subscription.id)


async def handle_subscription_resumed(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.resumed — mandate back on, keep the user on the paid plan."""
    if await _handle_subscription(db, event):
        logger.info("Subscription resumed: %s", event.subscription.id)


async def handle_subscription_halted(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.halted — retries exhausted, downgrade immediately."""

    def _record_reason(sub: Subscription) -> None:
        sub.cancellation_reason = HALTED_REASON

    if await _handle_subscription(db, event, _record_reason):
        logger.info("Subscription halted (payment failed after retries): %s", event.subscription.id)


async def handle_subscription_cancelled(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.cancelled — grace period, the user keeps access until end_date."""
    reason = cancellation_reason(event.subscription.cancelled_by)

    def _record_reason(sub: Subscription) -> None:
        sub.cancellation_reason = reason

    if await _handle_subscription(db, event, _record_reason):
        logger.info(
            "Subscription cancelled by %s: %s (access kept until end_date)",
            event.subscription.cancelled_by,
            event.subscription.id,
        )


async def handle_subscription_completed(db: AsyncSession, event: SubscriptionEvent) -> None:
    """Handle subscription.completed — all cycles billed, downgrade now."""
    if await _handle_subscription(db, event):
        logger.info("Subscription completed: %s", event.subscription.id)


Handler = Callable[[AsyncSession, WebhookEvent], Awaitable[None]]

# Map event types to handler functions
EVENT_HANDLERS: dict[EventType, Handler] = {
    EventType.PAYMENT_CAPTURED: handle_payment_captured,
    EventType.PAYMENT_FAILED: handle_payment_failed,
    EventType.ORDER_PAID: handle_order_paid,
    EventType.SUBSCRIPTION_AUTHENTICATED: handle_subscription_authenticated,
    EventType.SUBSCRIPTION_ACTIVATED: handle_subscription_activated,
    EventType.SUBSCRIPTION_CHARGED: handle_subscription_charged,
    EventType.SUBSCRIPTION_PENDING: handle_subscription_pending,
    EventType.SUBSCRIPTION_PAUSED: handle_subscription_paused,
    EventType.SUBSCRIPTION_RESUMED: handle_subscription_resumed,
    EventType.SUBSCRIPTION_HALTED: handle_subscription_halted,
    EventType.SUBSCRIPTION_CANCELLED: handle_subscription_cancelled,
    EventType.SUBSCRIPTION_COMPLETED: handle_subscription_completed,
}  # type: ignore[dict-item]


async def dispatch_event(db: AsyncSession, event: WebhookEvent) -> None:
    """Route a parsed event to its handler."""
    handler = EVENT_HANDLERS[EventType(event.event_type)]
    await handler(db, event)
