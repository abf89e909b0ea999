"""Versioned record frozen onto an invoice at issuance."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

SNAPSHOT_VERSION = 1


class SnapshotCustomer(BaseModel):
    id: UUID
    name: str


class SnapshotOrder(BaseModel):
    id: UUID
    status: str
    customer_id: UUID
    location_id: UUID | None = None


class SnapshotLineItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(validation_alias="invoice_line_item_id")
    line_type: str
    description: str
    amount: Decimal
    quantity: Decimal
    unit_rate_cents: int
    line_total_cents: int
    trade_code: str | None = None
    state: str | None = None
    is_commissionable: bool = True


class SnapshotHoursLine(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    earning_code: str
    unit: str
    quantity: Decimal
    rate: Decimal | None = None
    amount: Decimal | None = None
    trade_id: UUID | None = None


class SnapshotHoursEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(validation_alias="hours_entry_id")
    worker_id: UUID
    period_start: datetime
    period_end: datetime
    total_hours: Decimal
    type: str
    lines: list[SnapshotHoursLine]


class IssuedInvoiceSnapshot(BaseModel):
    """Everything the invoice showed when it was issued.

    ``snapshot_version`` is bumped whenever the shape changes so older
    stored snapshots can still be read.
    """

    snapshot_version: int = SNAPSHOT_VERSION
    invoice_id: UUID
    invoice_number: str
    issued_at: datetime
    issued_by_user_id: UUID | None
    customer: SnapshotCustomer
    order: SnapshotOrder | None
    line_items: list[SnapshotLineItem]
    approved_hours_entries: list[SnapshotHoursEntry]
    subtotal_cents: int
    total_cents: int
    invoice_footer_text: str = ""
