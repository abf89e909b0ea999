"""Invoice, line item, numbering and payment models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, TimestampMixin, utcnow
from settlement_engine.models.directory import Customer, Order


class InvoiceLineType:
    TRADE_LABOR = "TRADE_LABOR"
    SHIFT_DIFFERENTIAL = "SHIFT_DIFFERENTIAL"
    OTHER = "OTHER"


class Invoice(Base, TimestampMixin):
    """Customer invoice. ``invoice_number`` is set exactly when status is ISSUED."""

    __tablename__ = "invoice"

    invoice_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    customer_id: Mapped[UUID] = mapped_column(
        ForeignKey("customer.customer_id"), nullable=False
    )
    order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("staffing_order.order_id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    invoice_number: Mapped[str | None] = mapped_column(
        String, nullable=True, unique=True
    )
    invoice_date: Mapped[datetime | None] = mapped_column(nullable=True)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    issued_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )

    # Approval and routing
    approval_status: Mapped[str] = mapped_column(
        String, nullable=False, default="PENDING"
    )
    approval_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )
    routed_to_admin_at: Mapped[datetime | None] = mapped_column(nullable=True)
    routing_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    routed_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )

    issued_snapshot_json: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'ISSUED', 'VOIDED')",
            name="invoice_status_check",
        ),
    )

    # Relationships
    customer: Mapped[Customer] = relationship()
    order: Mapped[Order | None] = relationship()
    line_items: Mapped[list[InvoiceLineItem]] = relationship(
        back_populates="invoice",
        order_by="[InvoiceLineItem.sort_order, InvoiceLineItem.created_at]",
        cascade="all, delete-orphan",
    )
    payments: Mapped[list[InvoicePayment]] = relationship(back_populates="invoice")


class InvoiceLineItem(Base, TimestampMixin):
    """Billable line. Cent fields are always derived from amount x quantity."""

    __tablename__ = "invoice_line_item"

    invoice_line_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.invoice_id", ondelete="CASCADE"), nullable=False
    )
    line_type: Mapped[str] = mapped_column(
        String, nullable=False, default=InvoiceLineType.OTHER
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(12, 4), nullable=False, default=Decimal("1")
    )
    unit_rate_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    line_total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    trade_code: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    is_commissionable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice: Mapped[Invoice] = relationship(back_populates="line_items")


class InvoiceSequence(Base):
    """Single-row monotonic counter for invoice numbers."""

    __tablename__ = "invoice_sequence"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    next_number: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, default=utcnow, onupdate=utcnow
    )


class InvoicePayment(Base, TimestampMixin):
    """Customer payment against an issued invoice. Append-only."""

    __tablename__ = "invoice_payment"

    invoice_payment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.invoice_id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_received_at: Mapped[datetime] = mapped_column(nullable=False)
    payment_posted_at: Mapped[datetime] = mapped_column(nullable=False)
    bank_deposit_at: Mapped[datetime | None] = mapped_column(nullable=True)
    posted_by_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("app_user.user_id"), nullable=True
    )
    backdate_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="invoice_payment_amount_positive"),
    )

    invoice: Mapped[Invoice] = relationship(back_populates="payments")
