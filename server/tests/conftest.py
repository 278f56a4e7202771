"""Test configuration and fixtures."""

import os

# Configure before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("WORKERS_ENABLED", "false")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-bearer-secret")
os.environ.setdefault("REFUND_WEBHOOK_SECRET", "test-webhook-secret")

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import httpx
import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vilo.core.clock import today
from vilo.core.config import settings
from vilo.core.database import Base, get_db
from vilo.core.dependencies import reset_rate_limits
from vilo.models import (
    AddOn,
    AddOnPricingType,
    CancellationPolicy,
    Company,
    DiscountType,
    PricingMode,
    Promotion,
    Property,
    Room,
)
from vilo.schemas.booking import BookingRoomRequest, CreateBookingRequest
from vilo.services.payment_gateway import PaymentGatewayClient

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_token(user: dict, expires_in: int = 3600) -> str:
    """Sign a bearer token the way the identity provider does."""
    payload = {
        "sub": str(user["user_id"]),
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "user_type": user.get("user_type", "guest"),
        "roles": user.get("roles", []),
    }
    if user.get("email"):
        payload["email"] = user["email"]
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


def auth_headers(user: dict, **extra: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user)}", **extra}


def stay_dates(days_ahead: int = 30, nights: int = 3):
    check_in = today() + timedelta(days=days_ahead)
    return check_in, check_in + timedelta(days=nights)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    """Every test starts with empty rate limit windows."""
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway_calls():
    """
    Scripted Paystack/PayPal responses.

    Tests set `gateway_calls.paystack` to the JSON body (and optionally
    `gateway_calls.paystack_status`) the fake gateway answers with; every
    request seen is appended to `gateway_calls.requests`.
    """
    return SimpleNamespace(
        requests=[],
        paystack={"status": True, "data": {"id": 5001, "status": "processed"}},
        paystack_status=200,
        paypal={"id": "PP-REFUND-1", "status": "COMPLETED"},
        paypal_status=201,
    )


@pytest_asyncio.fixture(scope="function")
async def gateway(gateway_calls, monkeypatch):
    """A gateway client talking to an in-process fake of Paystack and PayPal."""
    monkeypatch.setattr(settings, "paystack_secret_key", "sk_test_vilo")
    monkeypatch.setattr(settings, "paypal_client_id", "paypal-client")
    monkeypatch.setattr(settings, "paypal_client_secret", "paypal-secret")

    def handler(request: httpx.Request) -> httpx.Response:
        gateway_calls.requests.append(request)
        if request.url.path == "/refund":
            return httpx.Response(gateway_calls.paystack_status, json=gateway_calls.paystack)
        if request.url.path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "paypal-token"})
        if request.url.path.endswith("/refund"):
            return httpx.Response(gateway_calls.paypal_status, json=gateway_calls.paypal)
        return httpx.Response(404, json={"message": "unknown endpoint"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield PaymentGatewayClient(http_client=client)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, gateway):
    """Create a test FastAPI application."""
    from fastapi import FastAPI

    from vilo.core.exceptions import register_exception_handlers
    from vilo.core.middleware import setup_middleware
    from vilo.routers import (
        bookings_router,
        health_router,
        metrics_router,
        promotions_router,
        quote_requests_router,
        refunds_router,
        rooms_router,
        webhooks_router,
    )
    from vilo.routers.refunds import get_payment_gateway

    # Create a simplified test app without lifespan
    app = FastAPI(title="Vilo API (Test)", version="1.0.0-test")

    setup_middleware(app, enable_logging=False)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(rooms_router)
    app.include_router(promotions_router)
    app.include_router(bookings_router)
    app.include_router(refunds_router)
    app.include_router(webhooks_router)
    app.include_router(quote_requests_router)
    app.include_router(metrics_router)

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def owner():
    return {
        "user_id": uuid4(),
        "email": "owner@seaside.example",
        "user_type": "host",
        "roles": ["host"],
    }


@pytest.fixture
def guest():
    return {
        "user_id": uuid4(),
        "email": "guest@example.com",
        "user_type": "guest",
        "roles": ["guest"],
    }


@pytest.fixture
def other_user():
    return {
        "user_id": uuid4(),
        "email": "stranger@example.com",
        "user_type": "guest",
        "roles": ["guest"],
    }


@pytest.fixture
def admin():
    return {
        "user_id": uuid4(),
        "email": "admin@vilo.example",
        "user_type": "admin",
        "roles": ["super_admin"],
    }


@pytest_asyncio.fixture(scope="function")
async def catalog(test_session, owner):
    """
    A company (VAT 15%) with one property on the moderate policy.

    - suite: per_unit, 1 000.00 a night, one unit, sleeps four
    - dorm: per_person, 350.00 a night per adult, three units
    - breakfast: 100.00 per guest per night
    - coupon SAVE10: 10% off
    """
    company = Company(
        owner_id=owner["user_id"],
        name="Seaside Hospitality",
        vat_percentage=15.0,
        default_currency="ZAR",
    )
    test_session.add(company)
    await test_session.flush()

    prop = Property(
        company_id=company.id,
        owner_id=owner["user_id"],
        name="Seaside Guesthouse",
        slug=f"seaside-{uuid4().hex[:8]}",
        address="12 Beach Road",
        city="Cape Town",
        country="South Africa",
        email="stay@seaside.example",
        currency="ZAR",
        cancellation_policy=CancellationPolicy.MODERATE.value,
    )
    test_session.add(prop)
    await test_session.flush()

    suite = Room(
        property_id=prop.id,
        name="Garden Suite",
        pricing_mode=PricingMode.PER_UNIT.value,
        base_price_per_night=100000,
        additional_person_rate=20000,
        child_price_per_night=25000,
        max_guests=4,
        total_units=1,
    )
    dorm = Room(
        property_id=prop.id,
        name="Shared Dorm",
        pricing_mode=PricingMode.PER_PERSON.value,
        base_price_per_night=35000,
        max_guests=6,
        total_units=3,
    )
    test_session.add_all([suite, dorm])
    await test_session.flush()

    breakfast = AddOn(
        property_id=prop.id,
        name="Breakfast",
        price=10000,
        pricing_type=AddOnPricingType.PER_GUEST_PER_NIGHT.value,
        max_quantity=1,
    )
    promotion = Promotion(
        property_id=prop.id,
        code="SAVE10",
        name="Ten percent off",
        discount_type=DiscountType.PERCENTAGE.value,
        discount_value=10,
        valid_from=datetime(2020, 1, 1),
    )
    test_session.add_all([breakfast, promotion])
    await test_session.commit()

    return SimpleNamespace(
        company=company,
        property=prop,
        suite=suite,
        dorm=dorm,
        breakfast=breakfast,
        promotion=promotion,
    )


@pytest.fixture
def booking_request(catalog, guest):
    """Build a CreateBookingRequest for the suite, 30 days out, three nights."""

    def build(**overrides) -> CreateBookingRequest:
        check_in, check_out = stay_dates()
        data = {
            "property_id": catalog.property.id,
            "guest_name": "Thandi Mokoena",
            "guest_email": guest["email"],
            "check_in_date": check_in,
            "check_out_date": check_out,
            "rooms": [BookingRoomRequest(room_id=catalog.suite.id, adults=2)],
        }
        data.update(overrides)
        return CreateBookingRequest(**data)

    return build


@pytest.fixture
def booking_payload(catalog, guest):
    """JSON body for POST /api/bookings, matching `booking_request` defaults."""

    def build(**overrides) -> dict:
        check_in, check_out = stay_dates()
        data = {
            "property_id": str(catalog.property.id),
            "guest_name": "Thandi Mokoena",
            "guest_email": guest["email"],
            "check_in_date": check_in.isoformat(),
            "check_out_date": check_out.isoformat(),
            "rooms": [{"room_id": str(catalog.suite.id), "adults": 2}],
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def headers_for():
    """`headers_for(user, **extra)` builds request headers with a bearer token."""
    return auth_headers
