"""Approved labor hours: the shared source for invoicing, margin and payroll."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, TimestampMixin
from settlement_engine.models.directory import AppUser, Order, Trade


class HoursEntryType:
    OFFICIAL = "OFFICIAL"
    SELF_REPORTED = "SELF_REPORTED"


class HoursApprovalStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LineUnit:
    HOURS = "HOURS"
    DOLLARS = "DOLLARS"
    REG_SD = "REG_SD"
    OT_SD = "OT_SD"
    DT_SD = "DT_SD"


class HoursEntry(Base, TimestampMixin):
    """One worker's hours for one order over a period."""

    __tablename__ = "hours_entry"

    hours_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("staffing_order.order_id", ondelete="CASCADE"), nullable=False
    )
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=False
    )
    period_start: Mapped[datetime] = mapped_column(nullable=False)
    period_end: Mapped[datetime] = mapped_column(nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    type: Mapped[str] = mapped_column(
        String, nullable=False, default=HoursEntryType.OFFICIAL
    )
    approval_status: Mapped[str] = mapped_column(
        String, nullable=False, default=HoursApprovalStatus.PENDING
    )

    __table_args__ = (
        CheckConstraint(
            "approval_status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="hours_entry_approval_status_check",
        ),
    )

    # Relationships
    order: Mapped[Order] = relationship()
    worker: Mapped[AppUser] = relationship()
    lines: Mapped[list[HoursEntryLine]] = relationship(
        back_populates="hours_entry",
        order_by="HoursEntryLine.sort_order",
        cascade="all, delete-orphan",
    )


class HoursEntryLine(Base):
    """Earning-code line of an hours entry."""

    __tablename__ = "hours_entry_line"

    hours_entry_line_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    hours_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("hours_entry.hours_entry_id", ondelete="CASCADE"), nullable=False
    )
    trade_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("trade.trade_id"), nullable=True
    )
    earning_code: Mapped[str] = mapped_column(String, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False, default=LineUnit.HOURS)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)

    hours_entry: Mapped[HoursEntry] = relationship(back_populates="lines")
    trade: Mapped[Trade | None] = relationship()
