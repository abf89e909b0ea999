"""Weekly payroll packets and fixed-amount deductions."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, TimestampMixin


class PayrollDeductionElection(Base, TimestampMixin):
    """Recurring ETV/ADV deduction effective from a given week."""

    __tablename__ = "payroll_deduction_election"

    payroll_deduction_election_id: Mapped[UUID] = mapped_column(
        primary_key=True, default=uuid4
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    effective_week: Mapped[date] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PayrollPacket(Base, TimestampMixin):
    """Persisted payroll export for one Monday-anchored week."""

    __tablename__ = "payroll_packet"

    payroll_packet_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    week_start: Mapped[date] = mapped_column(nullable=False, unique=True)
    generated_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )

    lines: Mapped[list[PayrollPacketLine]] = relationship(
        back_populates="packet",
        order_by="PayrollPacketLine.line_number",
        cascade="all, delete-orphan",
    )


_HOURS = Numeric(12, 2)


class PayrollPacketLine(Base):
    """One (employee, location code) row of a payroll packet."""

    __tablename__ = "payroll_packet_line"

    payroll_packet_line_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_packet_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_packet.payroll_packet_id", ondelete="CASCADE"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    ssn: Mapped[str] = mapped_column(String, nullable=False, default="")
    employee_name: Mapped[str] = mapped_column(String, nullable=False)
    loc: Mapped[str] = mapped_column(String, nullable=False, default="")
    reg_rate: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    reg_hours: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    ot_hours: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    dt_hours: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    holiday_hours: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    bonus_amount: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    reimb_amount: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    mileage_amount: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    per_diem_amount: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    advance_deduction_amount: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    etv_deduction_amount: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    reg_sd_hours: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    ot_sd_hours: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)
    dt_sd_hours: Mapped[Decimal] = mapped_column(_HOURS, nullable=False)

    packet: Mapped[PayrollPacket] = relationship(back_populates="lines")
