"""Tests for the Razorpay webhook HTTP endpoint."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from synka.database import get_session_factory
from synka.exceptions import DuplicatePaymentError
from synka.main import create_app
from synka.models.payment import Payment
from synka.models.profile import Profile

WEBHOOK_URL = "/api/v1/webhooks/razorpay"


class _CountingFactory:
    """Session factory wrapper that counts how many sessions were opened."""

    def __init__(self, factory) -> None:
        self.factory = factory
        self.opened = 0

    def __call__(self):
        self.opened += 1
        return self.factory()


async def _payment_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(Payment))


class TestSignatureGate:
    @pytest.mark.asyncio
    async def test_missing_signature_touches_no_database(
        self, test_settings, session_factory, make_body
    ):
        app = create_app(test_settings)
        spy = _CountingFactory(session_factory)
        app.dependency_overrides[get_session_factory] = lambda: spy

        body = make_body("payment.captured", payment={"id": "pay_1", "amount": 100})
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            resp = await ac.post(WEBHOOK_URL, content=body)

        assert resp.status_code == 400
        assert resp.json() == {"error": "No signature"}
        assert spy.opened == 0

    @pytest.mark.asyncio
    async def test_invalid_signature(self, client, make_body, sign_headers, db_session):
        body = make_body("payment.captured", payment={"id": "pay_1", "amount": 100})
        headers = sign_headers(body, secret="not-the-secret")

        resp = await client.post(WEBHOOK_URL, content=body, headers=headers)

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid signature"}
        assert await _payment_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_signature_over_different_body(self, client, make_body, sign_headers):
        body = make_body("payment.captured", payment={"id": "pay_1", "amount": 100})
        other = make_body("payment.captured", payment={"id": "pay_1", "amount": 1})

        resp = await client.post(WEBHOOK_URL, content=other, headers=sign_headers(body))

        assert resp.status_code == 400


class TestWebhookResponses:
    @pytest.mark.asyncio
    async def test_unknown_event_acknowledged(self, post_webhook, make_body):
        resp = await post_webhook(make_body("refund.processed", refund={"id": "rfnd_1"}))

        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    @pytest.mark.asyncio
    async def test_malformed_json(self, post_webhook):
        resp = await post_webhook(b"{definitely not json")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Webhook processing failed"}

    @pytest.mark.asyncio
    async def test_missing_entity(self, post_webhook, make_body):
        resp = await post_webhook(make_body("subscription.charged"))

        assert resp.status_code == 500

    @pytest.mark.asyncio
    async def test_cors_headers_on_response(self, post_webhook, make_body):
        resp = await post_webhook(make_body("refund.processed"))

        assert resp.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_preflight(self, client):
        resp = await client.options(WEBHOOK_URL)

        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "x-razorpay-signature" in resp.headers["access-control-allow-headers"]
        assert "POST" in resp.headers["access-control-allow-methods"]


class TestWebhookProcessing:
    @pytest.mark.asyncio
    async def test_charged_event_commits(self, post_webhook, make_body, make_subscription, db_session):
        sub = await make_subscription(razorpay_subscription_id="sub_123", payment_status="pending")

        resp = await post_webhook(
            make_body("subscription.charged", subscription={"id": "sub_123", "current_end": 1735689600})
        )

        assert resp.status_code == 200
        assert resp.json() == {"received": True}
        await db_session.refresh(sub)
        assert sub.end_date.year == 2025
        assert sub.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_duplicate_delivery_single_row(
        self, post_webhook, make_body, make_subscription, db_session
    ):
        sub = await make_subscription(
            razorpay_subscription_id="sub_dup_http", status="pending", payment_status="pending",
            profile_plan="Free",
        )
        body = make_body(
            "payment.captured",
            payment={"id": "pay_dup_http", "amount": 9900, "subscription_id": "sub_dup_http"},
        )

        first = await post_webhook(body)
        second = await post_webhook(body)

        assert first.status_code == 200
        assert second.status_code == 200
        assert await _payment_count(db_session) == 1
        plan = await db_session.scalar(select(Profile.plan).where(Profile.user_id == sub.user_id))
        assert plan == "Orange"

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_acknowledged(self, post_webhook, make_body):
        body = make_body("payment.captured", payment={"id": "pay_race", "amount": 100})

        with patch(
            "synka.api.v1.webhooks.dispatch_event",
            AsyncMock(side_effect=DuplicatePaymentError("pay_race")),
        ):
            resp = await post_webhook(body)

        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    @pytest.mark.asyncio
    async def test_duplicate_caught_by_unique_constraint(
        self, post_webhook, make_body, make_order, db_session
    ):
        """A delivery that races past the pre-check is rolled back and acknowledged."""
        order = await make_order(razorpay_order_id="order_race")
        db_session.add(
            Payment(
                user_id=order.user_id,
                razorpay_payment_id="pay_unique",
                amount=Decimal("499.00"),
                status="captured",
            )
        )
        await db_session.commit()
        body = make_body(
            "payment.captured",
            payment={"id": "pay_unique", "amount": 49900, "order_id": "order_race"},
        )

        with patch(
            "synka.billing.webhooks.is_duplicate_payment", AsyncMock(return_value=False)
        ):
            resp = await post_webhook(body)

        assert resp.status_code == 200
        assert resp.json() == {"received": True}
        assert await _payment_count(db_session) == 1
        await db_session.refresh(order)
        assert order.status == "pending"

    @pytest.mark.asyncio
    async def test_pending_after_halt_is_acknowledged(
        self, post_webhook, make_body, make_subscription, db_session
    ):
        sub = await make_subscription(razorpay_subscription_id="sub_halt_http")

        halted = await post_webhook(
            make_body("subscription.halted", created_at=1732000000, subscription={"id": "sub_halt_http"})
        )
        pending = await post_webhook(
            make_body("subscription.pending", created_at=1732000060, subscription={"id": "sub_halt_http"})
        )

        assert halted.status_code == 200
        assert pending.status_code == 200
        await db_session.refresh(sub)
        assert sub.status == "halted"
        assert sub.payment_status == "failed"

    @pytest.mark.asyncio
    async def test_redelivered_charge_extends_once(
        self, post_webhook, make_body, make_subscription, db_session
    ):
        sub = await make_subscription(
            razorpay_subscription_id="sub_charge_twice", end_date=datetime(2024, 12, 1)
        )
        body = make_body(
            "subscription.charged", created_at=1733011200, subscription={"id": "sub_charge_twice"}
        )

        first = await post_webhook(body)
        second = await post_webhook(body)

        assert first.status_code == 200
        assert second.status_code == 200
        await db_session.refresh(sub)
        assert sub.end_date == datetime(2025, 1, 1)

    @pytest.mark.asyncio
    async def test_handler_failure_rolls_back_everything(
        self, post_webhook, make_body, make_subscription, db_session
    ):
        """A failure after the ledger insert leaves no trace, so a retry can apply it."""
        sub = await make_subscription(
            razorpay_subscription_id="sub_boom", status="pending", payment_status="pending",
            profile_plan="Free",
        )
        body = make_body(
            "payment.captured",
            payment={"id": "pay_boom", "amount": 9900, "subscription_id": "sub_boom"},
        )

        with patch(
            "synka.billing.webhooks.activate_user_subscription",
            AsyncMock(side_effect=RuntimeError("entitlement store down")),
        ):
            resp = await post_webhook(body)

        assert resp.status_code == 500
        assert resp.json() == {"error": "Webhook processing failed"}
        assert await _payment_count(db_session) == 0
        await db_session.refresh(sub)
        assert sub.status == "pending"

        retry = await post_webhook(body)

        assert retry.status_code == 200
        assert await _payment_count(db_session) == 1
        await db_session.refresh(sub)
        assert sub.status == "active"


class TestServiceEndpoints:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "service": "Synka Billing"}

    @pytest.mark.asyncio
    async def test_root(self, client):
        resp = await client.get("/")

        assert resp.status_code == 200
        assert resp.json()["service"] == "Synka Billing"
