"""Burden rates and trade margin snapshots."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, Numeric, String, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.errors import SnapshotImmutableError
from settlement_engine.models.base import Base, TimestampMixin
from settlement_engine.models.invoice import Invoice


class BurdenLevel:
    """Rate scopes, most specific first."""

    WORKER = "WORKER"
    SITE = "SITE"
    STATE = "STATE"
    GLOBAL = "GLOBAL"


class BurdenCategory:
    WC = "WC"
    GL = "GL"
    FICA = "FICA"
    SUTA = "SUTA"
    FUTA = "FUTA"
    PEO = "PEO"
    OVERHEAD = "OVERHEAD"
    INT_W = "INT_W"
    INT_PD = "INT_PD"
    ADMIN = "ADMIN"
    BANK = "BANK"

    ALL = (WC, GL, FICA, SUTA, FUTA, PEO, OVERHEAD, INT_W, INT_PD, ADMIN, BANK)
    WAGE_FOLLOWING = (FICA, FUTA, SUTA, GL, PEO)


class PayrollBurdenRate(Base, TimestampMixin):
    """Effective-dated burden percentage at one scope level."""

    __tablename__ = "payroll_burden_rate"

    payroll_burden_rate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    level: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    rate_percent: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(nullable=False)
    worker_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )
    location_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("location.location_id"), nullable=True
    )
    state_code: Mapped[str | None] = mapped_column(String(2), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "level IN ('WORKER', 'SITE', 'STATE', 'GLOBAL')",
            name="payroll_burden_rate_level_check",
        ),
    )


class TradeMarginSnapshot(Base, TimestampMixin):
    """Immutable revenue-recognition record, one per invoice."""

    __tablename__ = "trade_margin_snapshot"

    trade_margin_snapshot_id: Mapped[UUID] = mapped_column(
        primary_key=True, default=uuid4
    )
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.invoice_id"), nullable=False, unique=True
    )
    trade_revenue_paid_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    trade_labor_cost_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    trade_burden_cost_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    trade_margin_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    commission_rate_snapshot: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), nullable=False
    )
    bank_lag_days_snapshot: Mapped[int] = mapped_column(Integer, nullable=False)
    posting_grace_days_snapshot: Mapped[int] = mapped_column(Integer, nullable=False)
    burden_breakdown_json: Mapped[dict[str, Any]] = mapped_column(nullable=False)

    invoice: Mapped[Invoice] = relationship()


@event.listens_for(TradeMarginSnapshot, "before_update")
def _snapshot_before_update_guard(mapper, connection, target: TradeMarginSnapshot):
    """Snapshots are written once and never updated."""
    raise SnapshotImmutableError(target.invoice_id)
