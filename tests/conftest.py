"""Shared test configuration and fixtures.

Each test gets a fresh in-memory SQLite database (aiosqlite) with every
table created from ``Base.metadata``. The webhook route opens its own
sessions, so fixtures commit the rows they create before a request is made.
"""

import json
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import synka.models  # noqa: F401  (registers every table on Base.metadata)
from synka.billing.signature import compute_signature
from synka.config import Settings
from synka.database import Base, create_session_factory, get_session_factory
from synka.main import create_app
from synka.models.order import Order
from synka.models.profile import Profile, UserRole
from synka.models.subscription import Subscription

TEST_WEBHOOK_SECRET = "whsec_synka_test_secret"
TEST_KEY_SECRET = "rzp_test_key_secret"
WEBHOOK_URL = "/api/v1/webhooks/razorpay"


# ---------------------------------------------------------------------------
# Settings / database
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Settings built explicitly, never from the process environment."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        database_service_key="test-service-key",
        razorpay_webhook_secret=TEST_WEBHOOK_SECRET,
        razorpay_key_secret=TEST_KEY_SECRET,
    )


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(
    test_settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test database."""
    app = create_app(test_settings)
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Webhook helpers
# ---------------------------------------------------------------------------


def _make_body(event: str, created_at: int | None = None, **entities: dict) -> bytes:
    """Serialize a Razorpay-style webhook body.

    ``make_body("payment.captured", payment={...})`` wraps each entity as
    ``payload.<name>.entity``.
    """
    body: dict = {
        "entity": "event",
        "event": event,
        "payload": {name: {"entity": entity} for name, entity in entities.items()},
    }
    if created_at is not None:
        body["created_at"] = created_at
    return json.dumps(body).encode("utf-8")


def _sign(body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> dict[str, str]:
    """Headers carrying a valid signature for ``body``."""
    return {
        "x-razorpay-signature": compute_signature(secret, body),
        "content-type": "application/json",
    }


@pytest.fixture
def make_body() -> Callable[..., bytes]:
    return _make_body


@pytest.fixture
def sign_headers() -> Callable[..., dict[str, str]]:
    return _sign


@pytest.fixture
def post_webhook(client: AsyncClient) -> Callable[..., Awaitable]:
    """POST a correctly signed webhook body."""

    async def _post(body: bytes):
        return await client.post(WEBHOOK_URL, content=body, headers=_sign(body))

    return _post


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_profile(db_session: AsyncSession) -> Callable[..., Awaitable[Profile]]:
    """Create a committed profile with the role matching its plan."""

    async def _make(plan: str = "Free", user_id: uuid.UUID | None = None) -> Profile:
        user_id = user_id or uuid.uuid4()
        profile = Profile(
            user_id=user_id,
            email=f"user-{uuid.uuid4().hex[:8]}@test.com",
            full_name="Test User",
            plan=plan,
        )
        db_session.add(profile)
        db_session.add(UserRole(user_id=user_id, role="orange" if plan == "Orange" else "free"))
        await db_session.commit()
        return profile

    return _make


@pytest.fixture
def make_subscription(
    db_session: AsyncSession, make_profile
) -> Callable[..., Awaitable[Subscription]]:
    """Create a committed subscription for a (new) paid user."""

    async def _make(
        razorpay_subscription_id: str | None = None,
        user_id: uuid.UUID | None = None,
        plan_type: str = "monthly",
        status: str = "active",
        payment_status: str = "paid",
        end_date: datetime = datetime(2024, 12, 1),
        auto_renew: bool = True,
        cancelled_at: datetime | None = None,
        last_event_at: datetime | None = None,
        profile_plan: str = "Orange",
    ) -> Subscription:
        if user_id is None:
            profile = await make_profile(plan=profile_plan)
            user_id = profile.user_id
        subscription = Subscription(
            user_id=user_id,
            plan_type=plan_type,
            status=status,
            payment_status=payment_status,
            amount=Decimal("99.00"),
            start_date=datetime(2024, 11, 1),
            end_date=end_date,
            current_period_end=end_date,
            auto_renew=auto_renew,
            cancelled_at=cancelled_at,
            razorpay_subscription_id=razorpay_subscription_id
            or f"sub_{uuid.uuid4().hex[:14]}",
            last_event_at=last_event_at,
        )
        db_session.add(subscription)
        await db_session.commit()
        return subscription

    return _make


@pytest.fixture
def make_order(db_session: AsyncSession) -> Callable[..., Awaitable[Order]]:
    """Create a committed pending order."""

    async def _make(razorpay_order_id: str | None = None, user_id: uuid.UUID | None = None) -> Order:
        order = Order(
            user_id=user_id or uuid.uuid4(),
            order_number=f"ORD-{uuid.uuid4().hex[:6].upper()}",
            product_type="nfc_card",
            quantity=1,
            amount=Decimal("499.00"),
            status="pending",
            razorpay_order_id=razorpay_order_id or f"order_{uuid.uuid4().hex[:14]}",
        )
        db_session.add(order)
        await db_session.commit()
        return order

    return _make
