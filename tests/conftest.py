"""
Pytest configuration and fixtures.

Every test gets its own throwaway SQLite database, so no external services
are needed. The Stripe client is always mocked.
"""
import os

os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_fake_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Dict, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from donation_settlement.config import Settings
from donation_settlement.core.engine import SettlementEngine
from donation_settlement.database import (
    Donation,
    Fundraiser,
    Payment,
    PaymentStatus,
    SettlementStore,
    init_db,
)
from donation_settlement.database.connection import create_session_factory
from donation_settlement.integrations.stripe_client import StripeClient
from donation_settlement.integrations.stripe_events import PaymentIntent

WEBHOOK_SECRET = "whsec_test_fake_secret"

FUNDRAISER_ID = "fund_test_1"
DONATION_ID = "don_test_1"
PAYMENT_ID = "pay_test_1"
PAYMENT_INTENT_ID = "pi_test_1"


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast tests without HTTP")
    config.addinivalue_line("markers", "integration: tests through the HTTP API")
    config.addinivalue_line("markers", "race: interleaved concurrent deliveries")


@dataclass
class RecordState:
    """Current column values of the three records, for before/after comparisons."""

    payment: Dict[str, Any]
    donation: Dict[str, Any]
    fundraiser: Dict[str, Any]


def _columns(row: Any) -> Dict[str, Any]:
    return {
        column.key: getattr(row, column.key)
        for column in row.__table__.columns
        if column.key not in ("created_at", "updated_at")
    }


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        stripe_secret_key="sk_test_fake_key_for_testing",
        stripe_webhook_secret=WEBHOOK_SECRET,
        database_url="sqlite+aiosqlite:///:memory:",
        app_name="donation-settlement-test",
        app_env="test",
        log_level="DEBUG",
        billing_retry_attempts=3,
        debug=True,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, Any]:
    """Create a fresh database file with all tables."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}",
        poolclass=NullPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SettlementStore:
    return SettlementStore(session_factory)


@pytest.fixture
def mock_billing() -> AsyncMock:
    """Stripe client double; customer creation succeeds by default."""
    billing = AsyncMock(spec=StripeClient)
    billing.create_customer.return_value = "cus_test_123"
    return billing


@pytest.fixture
def settlement_engine(store: SettlementStore, mock_billing: AsyncMock) -> SettlementEngine:
    return SettlementEngine(store=store, billing=mock_billing)


@pytest.fixture
def seed_records(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Any]:
    """
    Insert a fundraiser, a donation and a pending payment.

    Keyword overrides are applied per record, e.g.
    ``await seed_records(fundraiser={"match_funding_rate": 50})``.
    """

    async def _seed(
        fundraiser: Optional[Dict[str, Any]] = None,
        donation: Optional[Dict[str, Any]] = None,
        payment: Optional[Dict[str, Any]] = None,
        extra_payments: tuple = (),
    ) -> None:
        fundraiser_values = {
            "id": FUNDRAISER_ID,
            "total_raised": 0,
            "donations_count": 0,
            "match_funding_rate": 0,
            "match_funding_remaining": None,
            "match_funding_per_donation_limit": None,
            **(fundraiser or {}),
        }
        donation_values = {
            "fundraiser_id": FUNDRAISER_ID,
            "id": DONATION_ID,
            "donor_name": "Ada Lovelace",
            "donor_email": "ada@example.com",
            "donation_amount": 0,
            "contribution_amount": 0,
            "match_funding_amount": 0,
            "donation_counted": False,
            **(donation or {}),
        }
        payment_values = {
            "donation_id": DONATION_ID,
            "id": PAYMENT_ID,
            "status": PaymentStatus.PENDING.value,
            "donation_amount": 1000,
            "contribution_amount": 50,
            "match_funding_amount": None,
            "reference": None,
            **(payment or {}),
        }

        async with session_factory() as session:
            async with session.begin():
                session.add(Fundraiser(**fundraiser_values))
                await session.flush()
                session.add(Donation(**donation_values))
                await session.flush()
                session.add(Payment(**payment_values))
                for extra in extra_payments:
                    session.add(
                        Payment(
                            **{
                                **payment_values,
                                "reference": None,
                                **extra,
                            }
                        )
                    )

    return _seed


@pytest.fixture
def read_records(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Any]:
    """Read the current state of the seeded records."""

    async def _read(payment_id: str = PAYMENT_ID) -> RecordState:
        async with session_factory() as session:
            payment = (
                await session.execute(
                    select(Payment).filter_by(donation_id=DONATION_ID, id=payment_id)
                )
            ).scalar_one()
            donation = (
                await session.execute(
                    select(Donation).filter_by(fundraiser_id=FUNDRAISER_ID, id=DONATION_ID)
                )
            ).scalar_one()
            fundraiser = (
                await session.execute(select(Fundraiser).filter_by(id=FUNDRAISER_ID))
            ).scalar_one()
            return RecordState(
                payment=_columns(payment),
                donation=_columns(donation),
                fundraiser=_columns(fundraiser),
            )

    return _read


@pytest.fixture
def make_intent() -> Callable[..., PaymentIntent]:
    """Build a PaymentIntent matching the seeded payment (1000 + 50)."""

    def _make(**overrides: Any) -> PaymentIntent:
        data: Dict[str, Any] = {
            "id": PAYMENT_INTENT_ID,
            "amount": 1050,
            "amount_received": 1050,
            "setup_future_usage": None,
            "payment_method": "pm_test_card",
            "metadata": {
                "fundraiserId": FUNDRAISER_ID,
                "donationId": DONATION_ID,
                "paymentId": PAYMENT_ID,
            },
        }
        data.update(overrides)
        return PaymentIntent.model_validate(data)

    return _make


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for ``payload`` (scheme v1, HMAC-SHA256)."""
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"
