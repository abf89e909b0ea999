"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Invoice schemas
# ============================================================================


class DraftInvoiceCreate(BaseModel):
    """Schema for composing a draft invoice from an order's approved hours."""

    bill_rate: Decimal = Field(default=Decimal("0"), ge=0)


class InvoiceLineItemResponse(BaseModel):
    """Schema for invoice line item response."""

    model_config = ConfigDict(from_attributes=True)

    invoice_line_item_id: UUID
    line_type: str
    description: str
    amount: Decimal
    quantity: Decimal
    unit_rate_cents: int
    line_total_cents: int
    trade_code: str | None = None
    state: str | None = None
    is_commissionable: bool
    sort_order: int


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""

    model_config = ConfigDict(from_attributes=True)

    invoice_id: UUID
    customer_id: UUID
    order_id: UUID | None = None
    status: str
    invoice_number: str | None = None
    invoice_date: datetime | None = None
    subtotal_cents: int
    total_cents: int
    issued_at: datetime | None = None
    issued_by_user_id: UUID | None = None
    approval_status: str
    approval_note: str | None = None
    routed_to_admin_at: datetime | None = None
    routing_reason: str | None = None
    line_items: list[InvoiceLineItemResponse] = []


class IssueRequest(BaseModel):
    """Schema for issuing an invoice."""

    holiday_week: bool = False


class RoutingResponse(BaseModel):
    """Schema for a routing evaluation."""

    model_config = ConfigDict(from_attributes=True)

    action: str
    requires_customer_approval: bool
    missed_cutoff: bool
    cutoff_at_utc: datetime
    evaluated_at_utc: datetime
    reasons: list[str]


class RoutingOverrideRequest(BaseModel):
    """Schema for an admin routing override."""

    note: str | None = None


class PaidStateResponse(BaseModel):
    """Schema for an invoice's paid position."""

    model_config = ConfigDict(from_attributes=True)

    total_paid_cents: int
    balance_cents: int
    is_paid: bool


# ============================================================================
# Payment schemas
# ============================================================================


class PaymentCreate(BaseModel):
    """Schema for recording a customer payment."""

    amount_cents: int
    payment_received_at: datetime
    payment_posted_at: datetime
    bank_deposit_at: datetime | None = None
    backdate_reason: str | None = None
    source: str | None = None


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    invoice_payment_id: UUID
    invoice_id: UUID
    amount_cents: int
    payment_received_at: datetime
    payment_posted_at: datetime
    bank_deposit_at: datetime | None = None
    posted_by_user_id: UUID | None = None
    backdate_reason: str | None = None
    source: str | None = None
    created_at: datetime


class DuplicateMatchResponse(BaseModel):
    payment_id: UUID
    amount_cents: int
    payment_posted_at: datetime
    posted_by_user_id: UUID | None = None
    created_at: datetime


class DuplicateWarningResponse(BaseModel):
    """Advisory only; the payment was recorded."""

    model_config = ConfigDict(from_attributes=True)

    suspected: bool
    matches: list[DuplicateMatchResponse]


# ============================================================================
# Commission schemas
# ============================================================================


class CommissionEventResponse(BaseModel):
    """Schema for commission event response."""

    model_config = ConfigDict(from_attributes=True)

    commission_event_id: UUID
    invoice_payment_id: UUID
    commission_assignment_id: UUID
    user_id: UUID
    earned_at: datetime
    posted_at: datetime
    days_to_paid: int
    commission_rate_snapshot: Decimal
    payout_multiplier_snapshot: Decimal
    raw_commission_cents: int
    payable_commission_cents: int
    is_late_posted: bool


class SettlementResponse(BaseModel):
    """Schema for a payment's commission settlement."""

    model_config = ConfigDict(from_attributes=True)

    invoice_payment_id: UUID
    created: int
    events: list[CommissionEventResponse]
    days_to_paid: int
    payout_multiplier: Decimal
    proportion: Decimal
    revenue_for_payment_cents: Decimal
    margin_for_payment_cents: Decimal


class PaymentRecordedResponse(BaseModel):
    """Schema for a recorded payment with its settlement."""

    payment: PaymentResponse
    snapshot_created: bool
    settlement: SettlementResponse
    duplicate_warning: DuplicateWarningResponse | None = None


# ============================================================================
# Payroll schemas
# ============================================================================


class PayrollPacketResponse(BaseModel):
    """Schema for a persisted payroll packet."""

    packet_id: UUID | None
    week_start: date
    week_end: date
    line_count: int
