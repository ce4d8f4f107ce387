"""Tests for the checkout callback endpoint."""

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from synka.billing.signature import compute_signature
from synka.config import Settings
from synka.database import get_session_factory
from synka.main import create_app
from synka.models.payment import Payment
from synka.models.profile import Profile

VERIFY_URL = "/api/v1/payments/verify"


def _callback(key_secret: str, payment_id: str, *, order_id: str | None = None,
              subscription_id: str | None = None) -> dict:
    """Body the client posts after Razorpay Checkout succeeds."""
    gateway_id = subscription_id or order_id
    return {
        "type": "subscription" if subscription_id else "order",
        "razorpay_payment_id": payment_id,
        "razorpay_order_id": order_id,
        "razorpay_subscription_id": subscription_id,
        "razorpay_signature": compute_signature(key_secret, f"{gateway_id}|{payment_id}".encode()),
    }


async def _payments(db) -> list[Payment]:
    return list((await db.execute(select(Payment))).scalars().all())


class TestVerifyOrderPayment:
    @pytest.mark.asyncio
    async def test_order_marked_paid(self, client, test_settings, make_order, db_session):
        order = await make_order(razorpay_order_id="order_chk_1")

        resp = await client.post(
            VERIFY_URL,
            json=_callback(test_settings.razorpay_key_secret, "pay_chk_1", order_id="order_chk_1"),
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["order"]["status"] == "paid"
        assert data["order"]["order_number"] == order.order_number

        payments = await _payments(db_session)
        assert len(payments) == 1
        assert payments[0].amount == Decimal("499.00")
        assert payments[0].status == "captured"
        await db_session.refresh(order)
        assert order.status == "paid"
        assert order.razorpay_payment_id == "pay_chk_1"

    @pytest.mark.asyncio
    async def test_unknown_order(self, client, test_settings):
        resp = await client.post(
            VERIFY_URL,
            json=_callback(test_settings.razorpay_key_secret, "pay_x", order_id="order_nowhere"),
        )

        assert resp.status_code == 404
        assert resp.json() == {"detail": "Order not found"}


class TestVerifySubscriptionPayment:
    @pytest.mark.asyncio
    async def test_subscription_activated(self, client, test_settings, make_subscription, db_session):
        sub = await make_subscription(
            razorpay_subscription_id="sub_chk_1",
            status="pending",
            payment_status="pending",
            profile_plan="Free",
        )

        resp = await client.post(
            VERIFY_URL,
            json=_callback(test_settings.razorpay_key_secret, "pay_chk_2", subscription_id="sub_chk_1"),
        )

        assert resp.status_code == 200
        assert resp.json()["subscription"]["status"] == "active"
        await db_session.refresh(sub)
        assert sub.payment_status == "paid"
        assert sub.razorpay_payment_id == "pay_chk_2"
        plan = await db_session.scalar(select(Profile.plan).where(Profile.user_id == sub.user_id))
        assert plan == "Orange"

    @pytest.mark.asyncio
    async def test_callback_after_webhook_records_once(
        self, client, test_settings, post_webhook, make_body, make_subscription, db_session
    ):
        await make_subscription(
            razorpay_subscription_id="sub_chk_2", status="pending", payment_status="pending"
        )
        await post_webhook(
            make_body(
                "payment.captured",
                payment={"id": "pay_chk_3", "amount": 9900, "subscription_id": "sub_chk_2"},
            )
        )

        resp = await client.post(
            VERIFY_URL,
            json=_callback(test_settings.razorpay_key_secret, "pay_chk_3", subscription_id="sub_chk_2"),
        )

        assert resp.status_code == 200
        assert resp.json()["subscription"]["status"] == "active"
        assert len(await _payments(db_session)) == 1

    @pytest.mark.asyncio
    async def test_halted_subscription_not_revived(
        self, client, test_settings, make_subscription, db_session
    ):
        """The callback has no gateway timestamp, so it cannot lift a halt."""
        sub = await make_subscription(
            razorpay_subscription_id="sub_chk_halted",
            status="halted",
            payment_status="failed",
            auto_renew=False,
            profile_plan="Free",
        )

        resp = await client.post(
            VERIFY_URL,
            json=_callback(test_settings.razorpay_key_secret, "pay_chk_4", subscription_id="sub_chk_halted"),
        )

        assert resp.status_code == 200
        await db_session.refresh(sub)
        assert sub.status == "halted"
        plan = await db_session.scalar(select(Profile.plan).where(Profile.user_id == sub.user_id))
        assert plan == "Free"


class TestVerifySignature:
    @pytest.mark.asyncio
    async def test_wrong_signature(self, client, make_order, db_session):
        await make_order(razorpay_order_id="order_chk_bad")

        resp = await client.post(
            VERIFY_URL, json=_callback("wrong-secret", "pay_bad", order_id="order_chk_bad")
        )

        assert resp.status_code == 400
        assert resp.json() == {"detail": "Invalid signature"}
        assert await _payments(db_session) == []

    @pytest.mark.asyncio
    async def test_signature_bound_to_type(self, client, test_settings, make_order):
        """An order signature does not verify a subscription callback."""
        await make_order(razorpay_order_id="order_chk_type")
        body = _callback(test_settings.razorpay_key_secret, "pay_t", order_id="order_chk_type")
        body["type"] = "subscription"

        resp = await client.post(VERIFY_URL, json=body)

        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_key_secret_fails_closed(self, session_factory, make_order):
        await make_order(razorpay_order_id="order_chk_nokey")
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            database_service_key="test-service-key",
            razorpay_webhook_secret="whsec_any",
            razorpay_key_secret="",
        )
        app = create_app(settings)
        app.dependency_overrides[get_session_factory] = lambda: session_factory

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            resp = await ac.post(VERIFY_URL, json=_callback("", "pay_nokey", order_id="order_chk_nokey"))

        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, client):
        resp = await client.post(
            VERIFY_URL,
            json={"type": "refund", "razorpay_payment_id": "p", "razorpay_signature": "s"},
        )

        assert resp.status_code == 422
