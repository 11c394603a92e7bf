"""Pytest configuration and shared fixtures for all tests."""

import os

# Minimal environment for settings; must be set before importing the package
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./referral_ledger_test.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from referral_ledger.models import (
    Base,
    GiftCode,
    InvestmentProduct,
    ReferralAcceptance,
    ReferralStatus,
    User,
    UserInvestment,
)
from referral_ledger.utils.concurrency_guard import ConcurrencyGuard
from referral_ledger.utils.datetime_utils import utc_now


@pytest.fixture
async def engine(tmp_path):
    """
    File-backed SQLite engine with one schema per test.

    Every transaction starts with BEGIN IMMEDIATE, so concurrent writers
    wait on each other like row locks make them wait on PostgreSQL.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def session(session_maker):
    """Session for the service under test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def guard():
    """Fresh per-user lock map bound to the test's event loop."""
    return ConcurrencyGuard(timeout=5.0, sweep_threshold=1000)


# ----------------------------------------------------------------------
# Data helpers. Each opens and closes its own session so no transaction
# (and no SQLite write lock) outlives the call.
# ----------------------------------------------------------------------


@pytest.fixture
def make_user(session_maker):
    """Factory creating a user and returning its id."""
    counter = {"n": 0}

    async def _make_user(
        balance: Decimal = Decimal("0"),
        referral_code: str | None = None,
        username: str | None = None,
    ) -> int:
        counter["n"] += 1
        async with session_maker() as session:
            user = User(
                username=username or f"user{counter['n']}",
                referral_code=referral_code,
                balance=balance,
            )
            session.add(user)
            await session.commit()
            return user.id

    return _make_user


@pytest.fixture
def fetch_user(session_maker):
    """Read a user row in a short-lived session."""
    async def _fetch_user(user_id: int) -> User | None:
        async with session_maker() as session:
            return await session.get(User, user_id)

    return _fetch_user


@pytest.fixture
def make_acceptance(session_maker):
    """Insert a ReferralAcceptance row directly, e.g. with an old created_at."""
    async def _make_acceptance(
        referred_user_id: int,
        referrer_id: int,
        referral_code: str,
        status: ReferralStatus = ReferralStatus.PENDING,
        age: timedelta = timedelta(0),
    ) -> int:
        async with session_maker() as session:
            row = ReferralAcceptance(
                referred_user_id=referred_user_id,
                referrer_id=referrer_id,
                referral_code=referral_code,
                status=status.value,
                created_at=utc_now() - age,
            )
            session.add(row)
            await session.commit()
            return row.id

    return _make_acceptance


@pytest.fixture
def make_product(session_maker):
    """Factory creating an investment product."""
    async def _make_product(
        price: Decimal = Decimal("100"),
        daily_return_rate: Decimal = Decimal("0.02"),
        duration_days: int = 30,
        is_active: bool = True,
    ) -> int:
        async with session_maker() as session:
            product = InvestmentProduct(
                name=f"Plan {price}",
                price=price,
                daily_return_rate=daily_return_rate,
                duration_days=duration_days,
                is_active=is_active,
            )
            session.add(product)
            await session.commit()
            return product.id

    return _make_product


@pytest.fixture
def make_investment(session_maker, make_product):
    """Factory creating an ACTIVE position without touching the balance."""
    async def _make_investment(
        user_id: int,
        daily_return: Decimal = Decimal("2"),
        start_date: date | None = None,
        duration_days: int = 30,
        status: str = "ACTIVE",
    ) -> int:
        product_id = await make_product()
        start = start_date or utc_now().date()
        async with session_maker() as session:
            investment = UserInvestment(
                user_id=user_id,
                product_id=product_id,
                amount=Decimal("100"),
                daily_return=daily_return,
                start_date=start,
                end_date=start + timedelta(days=duration_days),
                status=status,
            )
            session.add(investment)
            await session.commit()
            return investment.id

    return _make_investment


@pytest.fixture
def make_gift_code(session_maker):
    """Factory inserting a gift code directly."""
    async def _make_gift_code(
        code: str = "GIFT2024",
        amount: Decimal = Decimal("5"),
        max_uses: int = 1000,
        current_uses: int = 0,
        is_active: bool = True,
        expires_in: timedelta = timedelta(days=1),
    ) -> int:
        async with session_maker() as session:
            gift_code = GiftCode(
                code=code,
                amount=amount,
                max_uses=max_uses,
                current_uses=current_uses,
                is_active=is_active,
                expires_at=utc_now() + expires_in,
            )
            session.add(gift_code)
            await session.commit()
            return gift_code.id

    return _make_gift_code
