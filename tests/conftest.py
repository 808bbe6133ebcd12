"""Pytest fixtures for payroll engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from indopayroll.calculators.rate_table import RateTable, RateTableRegistry, load_rate_tables
from indopayroll.calculators.types import (
    CompensationProfile,
    DayType,
    HolidayAllowanceKind,
    MaritalStatus,
    OvertimeEntry,
    OvertimeStatus,
    PayrollPeriod,
    TaxFreeStatus,
)
from indopayroll.models import Base

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# =============================================================================
# Rate tables
# =============================================================================


@pytest.fixture(scope="session")
def registry() -> RateTableRegistry:
    """Packaged rate tables."""
    return load_rate_tables()


@pytest.fixture(scope="session")
def rates(registry) -> RateTable:
    """Rate table in force during 2024."""
    return registry.resolve(date(2024, 3, 25))


# =============================================================================
# Domain inputs
# =============================================================================


@pytest.fixture
def make_profile():
    """Factory for compensation profiles (TK/0, 10,000,000 basic by default)."""

    def _make(**overrides) -> CompensationProfile:
        values = {
            "basic_salary": Decimal("10000000"),
            "tax_free_status": TaxFreeStatus(MaritalStatus.UNMARRIED, 0),
            "employment_start": date(2022, 1, 1),
        }
        values.update(overrides)
        return CompensationProfile(**values)

    return _make


@pytest.fixture
def regular_period() -> PayrollPeriod:
    """March 2024 monthly period without THR."""
    return PayrollPeriod(
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        payment_date=date(2024, 3, 25),
        period_code="MONTHLY",
    )


@pytest.fixture
def holiday_period() -> PayrollPeriod:
    """March 2024 period paying Idul Fitri THR."""
    return PayrollPeriod(
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        payment_date=date(2024, 3, 25),
        period_code="MONTHLY",
        holiday_allowance=True,
        holiday_allowance_kind=HolidayAllowanceKind.IDUL_FITRI,
    )


@pytest.fixture
def make_overtime():
    """Factory for overtime entries."""

    def _make(
        employee_id,
        work_date: date,
        hours: str,
        day_type: DayType = DayType.WEEKDAY,
        status: OvertimeStatus = OvertimeStatus.APPROVED,
        entry_id=None,
    ) -> OvertimeEntry:
        return OvertimeEntry(
            entry_id=entry_id or uuid4(),
            employee_id=employee_id,
            work_date=work_date,
            day_type=day_type,
            hours=Decimal(hours),
            status=status,
        )

    return _make


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()
