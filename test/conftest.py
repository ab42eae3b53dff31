"""
Pytest configuration and fixtures for AllTown Dispatch tests

Database-backed tests run against a throwaway SQLite file (aiosqlite). The
engine's pool holds a single connection, so concurrent sessions queue for it
and every transaction runs whole, the way row locks serialise writers on
PostgreSQL. Tests must therefore finish (commit, roll back or close) one
session before opening another.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Must be set before alltown.config is imported
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH120

import httpx  # noqa: E402
import pytest  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import AsyncAdaptedQueuePool  # noqa: E402

from alltown import models  # noqa: E402, F401
from alltown.config import settings  # noqa: E402
from alltown.database import Base  # noqa: E402
from alltown.main import create_app  # noqa: E402
from alltown.models import BusinessSettings, Tenant, UserProfile  # noqa: E402
from alltown.services.geocoding_service import AddressValidation, DistanceResult  # noqa: E402
from alltown.services.tenant_directory import TenantDirectory  # noqa: E402

APEX = "alltowndelivery.com"


class FakeDistanceClient:
    """DistanceClient double: fixed answer per (origin, destination), default otherwise."""

    def __init__(self, miles: str = "8.00", minutes: int = 20):
        self.default = DistanceResult(Decimal(miles), minutes)
        self.routes: dict[tuple[str, str], DistanceResult] = {}
        self.calls: list[tuple[str, ...]] = []
        self.error: Exception | None = None
        self.unknown_addresses: set[str] = set()

    def set_route(self, origin: str, destination: str, miles: str, minutes: int = 15) -> None:
        self.routes[(origin, destination)] = DistanceResult(Decimal(miles), minutes)

    async def measure(self, origin: str, destination: str) -> DistanceResult:
        self.calls.append((origin, destination))
        if self.error is not None:
            raise self.error
        return self.routes.get((origin, destination), self.default)

    async def validate_address(self, address: str) -> AddressValidation:
        self.calls.append((address,))
        if self.error is not None:
            raise self.error
        if address in self.unknown_addresses:
            return AddressValidation(is_valid=False, error_message="Address validation failed: ZERO_RESULTS")
        return AddressValidation(is_valid=True, formatted_address=address.title(), latitude=39.78, longitude=-89.65)


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_token(subject: str, expires_in: timedelta = timedelta(hours=1), secret: str | None = None) -> str:
    claims = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth_headers(profile_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(profile_id)}"}


def delivery_payload(**overrides) -> dict:
    payload = {
        "customerName": "Sara Lee",
        "phone": "555-0100",
        "email": "sara@example.com",
        "pickupAddress": "12 Main St, Springfield",
        "deliveryAddress": "80 Oak Ave, Springfield",
        "preferredDate": "2026-10-20",
        "preferredTime": "morning",
        "paymentMethod": "card",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'alltown_test.db'}",
        echo=False,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=1,
        max_overflow=0,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def seed(session_factory):
    """
    Two active tenants (basic and trial plan), one inactive tenant and a
    second basic tenant, with staff and customers.

    saras: radius 5, base 5.00, 1.50/mile, rush 1.5, 3 points per free delivery.
    """
    async with session_factory() as session:
        saras = Tenant(
            id="t-saras",
            company_name="Sara's Quickie Delivery",
            subdomain="saras",
            custom_domain="sarasquickiedelivery.com",
            plan_type="basic",
            primary_color="#ff5500",
        )
        bobs = Tenant(id="t-bobs", company_name="Bob's Couriers", subdomain="bobs", plan_type="premium")
        trial = Tenant(id="t-trial", company_name="Trial Runners", subdomain="trialrun", plan_type="trial")
        closed = Tenant(id="t-closed", company_name="Closed Co", subdomain="closed", is_active=False)
        session.add_all([saras, bobs, trial, closed])
        await session.flush()

        session.add(
            BusinessSettings(
                tenant_id="t-saras",
                base_delivery_fee=Decimal("5.00"),
                price_per_mile=Decimal("1.50"),
                base_fee_radius_miles=Decimal("5.00"),
                rush_delivery_multiplier=Decimal("1.5"),
                points_for_free_delivery=3,
            )
        )

        session.add_all(
            [
                UserProfile(id="u-driver-1", tenant_id="t-saras", email="d1@saras.test", full_name="Dee One", role="driver"),
                UserProfile(id="u-driver-2", tenant_id="t-saras", email="d2@saras.test", full_name="Dee Two", role="driver"),
                UserProfile(id="u-dispatch", tenant_id="t-saras", email="ops@saras.test", role="dispatcher"),
                UserProfile(id="u-admin", tenant_id="t-saras", email="admin@saras.test", role="admin"),
                UserProfile(id="u-customer", tenant_id="t-saras", email="cust@saras.test", role="customer"),
                UserProfile(id="u-bobs-driver", tenant_id="t-bobs", email="d@bobs.test", role="driver"),
                UserProfile(id="u-trial-admin", tenant_id="t-trial", email="admin@trial.test", role="admin"),
            ]
        )
        await session.commit()


@pytest.fixture
def distance_client():
    return FakeDistanceClient()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def tenant_directory(session_factory, clock):
    return TenantDirectory(session_factory, apex_domain=APEX, production=True, ttl_seconds=300, clock=clock)


@pytest.fixture
def app(session_factory, distance_client, tenant_directory):
    return create_app(
        session_factory=session_factory,
        distance_client=distance_client,
        tenant_directory=tenant_directory,
    )


def tenant_client(app, host: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=f"http://{host}")


@pytest.fixture
async def client(app, seed):
    """Client addressed to saras.alltowndelivery.com."""
    async with tenant_client(app, f"saras.{APEX}") as http:
        yield http


@pytest.fixture
async def bobs_client(app, seed):
    async with tenant_client(app, f"bobs.{APEX}") as http:
        yield http


@pytest.fixture
async def saras(seed, tenant_directory):
    return await tenant_directory.get_by_id("t-saras")


@pytest.fixture
async def bobs(seed, tenant_directory):
    return await tenant_directory.get_by_id("t-bobs")


@pytest.fixture
async def trial(seed, tenant_directory):
    return await tenant_directory.get_by_id("t-trial")
