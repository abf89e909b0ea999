"""Pytest fixtures for settlement engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from settlement_engine.models import (
    AppUser,
    Base,
    BurdenCategory,
    BurdenLevel,
    CommissionAssignment,
    CommissionPlan,
    CommissionTier,
    Customer,
    EmployeeProfile,
    HoursApprovalStatus,
    HoursEntry,
    HoursEntryLine,
    HoursEntryType,
    LineUnit,
    Location,
    Order,
    OrderStatus,
    PayrollBurdenRate,
    PayrollDeductionElection,
    Trade,
)

# Use in-memory SQLite for tests (with async support).
# StaticPool keeps every session on the one in-memory database.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

UTC = timezone.utc

# Work week Sunday 2025-03-09 .. Saturday 2025-03-15 (US DST began 2025-03-09).
# Its cutoff is Wednesday 2025-03-12 08:00 CDT = 13:00 UTC.
WEEK_PERIOD_START = datetime(2025, 3, 9, 12, 0, tzinfo=UTC)
WEEK_PERIOD_END = datetime(2025, 3, 15, 18, 0, tzinfo=UTC)
BEFORE_CUTOFF = datetime(2025, 3, 12, 12, 0, tzinfo=UTC)
AFTER_CUTOFF = datetime(2025, 3, 12, 14, 0, tzinfo=UTC)

RATES_EFFECTIVE = datetime(2020, 1, 1, tzinfo=UTC)


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory database per test."""
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
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


class Factory:
    """Builds persisted records with sensible defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._users = 0

    async def add(self, *objects: Any) -> None:
        self.session.add_all(objects)
        await self.session.flush()

    async def customer(self, name: str = "Acme Industrial", requires_approval: bool = False) -> Customer:
        customer = Customer(name=name, requires_invoice_approval=requires_approval)
        await self.add(customer)
        return customer

    async def location(self, customer: Customer, state: str | None = "TX") -> Location:
        location = Location(customer_id=customer.customer_id, name="Plant 4", state=state)
        await self.add(location)
        return location

    async def trade(self, code: str = "ELEC") -> Trade:
        trade = Trade(code=code, name=code.title())
        await self.add(trade)
        return trade

    async def user(self, full_name: str | None = None, ssn: str | None = None) -> AppUser:
        self._users += 1
        user = AppUser(email=f"user{self._users}@example.com", full_name=full_name)
        await self.add(user)
        if ssn is not None:
            await self.add(EmployeeProfile(user_id=user.user_id, ssn=ssn))
        return user

    async def order(
        self,
        customer: Customer,
        location: Location | None,
        status: str = OrderStatus.FILLED,
        job_location_code: str | None = "LOC1",
        sd_bill_delta_rate: Decimal | None = Decimal("2.00"),
    ) -> Order:
        order = Order(
            customer_id=customer.customer_id,
            location_id=location.location_id if location else None,
            status=status,
            job_location_code=job_location_code,
            sd_bill_delta_rate=sd_bill_delta_rate,
        )
        await self.add(order)
        return order

    async def hours(
        self,
        order: Order,
        worker: AppUser,
        lines: list[tuple[str, str, str, str | None, UUID | None]] | None = None,
        *,
        total_hours: Decimal = Decimal("45"),
        period_start: datetime = WEEK_PERIOD_START,
        period_end: datetime = WEEK_PERIOD_END,
        approval_status: str = HoursApprovalStatus.APPROVED,
        entry_type: str = HoursEntryType.OFFICIAL,
    ) -> HoursEntry:
        """Hours entry; each line is (earning_code, unit, quantity, rate, trade_id)."""
        entry = HoursEntry(
            order_id=order.order_id,
            worker_id=worker.user_id,
            period_start=period_start,
            period_end=period_end,
            total_hours=total_hours,
            type=entry_type,
            approval_status=approval_status,
        )
        entry.lines = [
            HoursEntryLine(
                earning_code=code,
                unit=unit,
                quantity=Decimal(quantity),
                rate=Decimal(rate) if rate is not None else None,
                trade_id=trade_id,
                sort_order=index,
            )
            for index, (code, unit, quantity, rate, trade_id) in enumerate(lines or [])
        ]
        await self.add(entry)
        return entry

    async def burden_rate(
        self,
        category: str,
        rate_percent: str,
        level: str = BurdenLevel.GLOBAL,
        *,
        effective_date: datetime = RATES_EFFECTIVE,
        state_code: str | None = None,
        location_id: UUID | None = None,
        worker_id: UUID | None = None,
    ) -> PayrollBurdenRate:
        rate = PayrollBurdenRate(
            level=level,
            category=category,
            rate_percent=Decimal(rate_percent),
            effective_date=effective_date,
            state_code=state_code,
            location_id=location_id,
            worker_id=worker_id,
        )
        await self.add(rate)
        return rate

    async def commission_plan(
        self,
        default_rate: str = "0.10",
        tiers: list[tuple[int, int | None, str]] | None = None,
    ) -> CommissionPlan:
        plan = CommissionPlan(name="Standard", is_active=True, default_rate=Decimal(default_rate))
        plan.tiers = [
            CommissionTier(sort_order=i, min_days=lo, max_days=hi, multiplier=Decimal(m))
            for i, (lo, hi, m) in enumerate(tiers or [])
        ]
        await self.add(plan)
        return plan

    async def assignment(
        self,
        order: Order,
        user: AppUser,
        split_percent: str = "1",
        effective_from: datetime | None = None,
        effective_to: datetime | None = None,
    ) -> CommissionAssignment:
        assignment = CommissionAssignment(
            order_id=order.order_id,
            user_id=user.user_id,
            split_percent=Decimal(split_percent),
            effective_from=effective_from,
            effective_to=effective_to,
        )
        await self.add(assignment)
        return assignment

    async def deduction(
        self,
        employee: AppUser,
        code: str,
        amount_cents: int,
        effective_week: date,
        is_active: bool = True,
    ) -> PayrollDeductionElection:
        election = PayrollDeductionElection(
            employee_id=employee.user_id,
            code=code,
            amount_cents=amount_cents,
            effective_week=effective_week,
            is_active=is_active,
        )
        await self.add(election)
        return election


@pytest_asyncio.fixture
async def factory(session: AsyncSession) -> Factory:
    return Factory(session)


@dataclass
class World:
    """A filled order at a Texas job site with one week of approved hours.

    Committed, so services that roll back on error leave it in place.

    Labor: REG 40h x $30 + OT 5h x $45 = $1,425.00, plus 8 REG_SD hours.
    Burden: WC 5% on $1,350 base wages + FICA 7.65% on $1,425 = $176.5125.
    """

    customer: Customer
    location: Location
    trade: Trade
    worker: AppUser
    salesperson: AppUser
    order: Order
    entry: HoursEntry


@pytest_asyncio.fixture
async def world(factory: Factory) -> World:
    customer = await factory.customer()
    location = await factory.location(customer, state="TX")
    trade = await factory.trade()
    worker = await factory.user("Jane Q Public", ssn="123-45-6789")
    salesperson = await factory.user("Sam Seller")
    order = await factory.order(customer, location)
    entry = await factory.hours(
        order,
        worker,
        [
            ("REG", LineUnit.HOURS, "40", "30", trade.trade_id),
            ("OT", LineUnit.HOURS, "5", "45", trade.trade_id),
            ("SD", LineUnit.REG_SD, "8", None, None),
        ],
    )
    await factory.burden_rate(BurdenCategory.WC, "5", BurdenLevel.STATE, state_code="TX")
    await factory.burden_rate(BurdenCategory.FICA, "7.65")
    await factory.session.commit()
    return World(
        customer=customer,
        location=location,
        trade=trade,
        worker=worker,
        salesperson=salesperson,
        order=order,
        entry=entry,
    )
