"""Commission plans, assignments and settled events."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, TimestampMixin
from settlement_engine.models.directory import AppUser
from settlement_engine.models.invoice import InvoicePayment


class CommissionPlan(Base, TimestampMixin):
    """Commission plan; the newest active plan governs settlement."""

    __tablename__ = "commission_plan"

    commission_plan_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    default_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)

    tiers: Mapped[list[CommissionTier]] = relationship(
        back_populates="plan",
        order_by="CommissionTier.sort_order",
        cascade="all, delete-orphan",
    )


class CommissionTier(Base):
    """Days-to-paid range mapped to a payout multiplier."""

    __tablename__ = "commission_tier"

    commission_tier_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    commission_plan_id: Mapped[UUID] = mapped_column(
        ForeignKey("commission_plan.commission_plan_id", ondelete="CASCADE"),
        nullable=False,
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_days: Mapped[int] = mapped_column(Integer, nullable=False)
    max_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "multiplier >= 0 AND multiplier <= 1",
            name="commission_tier_multiplier_range",
        ),
    )

    plan: Mapped[CommissionPlan] = relationship(back_populates="tiers")


class CommissionAssignment(Base, TimestampMixin):
    """Salesperson share of an order over an effective window."""

    __tablename__ = "commission_assignment"

    commission_assignment_id: Mapped[UUID] = mapped_column(
        primary_key=True, default=uuid4
    )
    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("staffing_order.order_id"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(ForeignKey("app_user.user_id"), nullable=False)
    split_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=Decimal("1")
    )
    effective_from: Mapped[datetime | None] = mapped_column(nullable=True)
    effective_to: Mapped[datetime | None] = mapped_column(nullable=True)

    user: Mapped[AppUser] = relationship()


class CommissionEvent(Base, TimestampMixin):
    """Commission earned by one assignment from one payment."""

    __tablename__ = "commission_event"

    commission_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice_payment.invoice_payment_id"), nullable=False
    )
    commission_assignment_id: Mapped[UUID] = mapped_column(
        ForeignKey("commission_assignment.commission_assignment_id"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(ForeignKey("app_user.user_id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(nullable=False)
    posted_at: Mapped[datetime] = mapped_column(nullable=False)
    days_to_paid: Mapped[int] = mapped_column(Integer, nullable=False)
    commission_rate_snapshot: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), nullable=False
    )
    payout_multiplier_snapshot: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False
    )
    raw_commission_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payable_commission_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_late_posted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint(
            "invoice_payment_id",
            "commission_assignment_id",
            name="commission_event_payment_assignment_unique",
        ),
    )

    payment: Mapped[InvoicePayment] = relationship()
    assignment: Mapped[CommissionAssignment] = relationship()
    user: Mapped[AppUser] = relationship()
