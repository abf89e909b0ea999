"""Append-only customer payment ledger.

Recording a payment is the single entry point that makes money "real" for
commissions: inside one transaction it stores the payment, freezes the
invoice's margin snapshot on first payment, and settles commission events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.database import atomic
from settlement_engine.errors import (
    InvoiceNotFoundError,
    PaymentStateError,
    PaymentValidationError,
)
from settlement_engine.models import Invoice, InvoicePayment
from settlement_engine.models.base import utcnow
from settlement_engine.services.audit import record_audit
from settlement_engine.services.commission_service import (
    CommissionSettlementService,
    SettlementResult,
)
from settlement_engine.services.margin_snapshot_service import (
    SnapshotResult,
    TradeMarginSnapshotService,
)
from settlement_engine.services.state_machine import InvoiceStatus

logger = logging.getLogger(__name__)

MIN_BACKDATE_REASON_LENGTH = 5
DUPLICATE_WINDOW = timedelta(days=3)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_backdated(posted_at: datetime, now: datetime) -> bool:
    """Posted more than one full calendar day (UTC) before ``now``."""
    return _as_utc(posted_at).date() < _as_utc(now).date() - timedelta(days=1)


def validate_payment_input(
    amount_cents: int,
    payment_received_at: datetime,
    payment_posted_at: datetime,
    bank_deposit_at: datetime | None,
    backdate_reason: str | None,
    now: datetime,
) -> str | None:
    """Check a payment before it touches the database.

    Returns the normalized backdate reason (stripped, or None).
    """
    if amount_cents <= 0:
        raise PaymentValidationError("Payment amount must be greater than 0")

    received = _as_utc(payment_received_at)
    posted = _as_utc(payment_posted_at)
    if received > posted:
        raise PaymentValidationError("paymentReceivedAt must be on or before paymentPostedAt")

    if bank_deposit_at is not None:
        deposit = _as_utc(bank_deposit_at)
        if deposit < received:
            raise PaymentValidationError("bankDepositAt must be on or after paymentReceivedAt")
        if deposit < posted:
            raise PaymentValidationError("bankDepositAt must be on or after paymentPostedAt")

    reason = backdate_reason.strip() if backdate_reason else ""
    if is_backdated(posted, now) and not reason:
        raise PaymentValidationError(
            "backdateReason is required when paymentPostedAt is more than 1 day in the past"
        )
    if reason and len(reason) < MIN_BACKDATE_REASON_LENGTH:
        raise PaymentValidationError(
            f"backdateReason must be at least {MIN_BACKDATE_REASON_LENGTH} characters"
        )
    return reason or None


@dataclass(frozen=True)
class DuplicateWarning:
    """Same-amount payments posted close together on the same invoice."""

    suspected: bool
    matches: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class RecordedPayment:
    payment: InvoicePayment
    snapshot: SnapshotResult
    settlement: SettlementResult
    duplicate_warning: DuplicateWarning | None = None


class PaymentLedger:
    """Records payments against issued invoices."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.snapshots = TradeMarginSnapshotService(session)
        self.commissions = CommissionSettlementService(session)

    async def record_payment(
        self,
        invoice_id: UUID,
        amount_cents: int,
        payment_received_at: datetime,
        payment_posted_at: datetime,
        posted_by_user_id: UUID | None = None,
        bank_deposit_at: datetime | None = None,
        backdate_reason: str | None = None,
        source: str | None = None,
        now: datetime | None = None,
    ) -> RecordedPayment:
        """Record a payment, freeze the margin snapshot and settle commissions.

        Raises:
            PaymentValidationError: Bad amount, ordering or backdate reason
            InvoiceNotFoundError: Invoice doesn't exist
            PaymentStateError: Invoice is not ISSUED
        """
        now = now or utcnow()
        reason = validate_payment_input(
            amount_cents,
            payment_received_at,
            payment_posted_at,
            bank_deposit_at,
            backdate_reason,
            now,
        )

        invoice = await self.session.get(Invoice, invoice_id, populate_existing=True)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        if invoice.status == InvoiceStatus.VOIDED.value:
            raise PaymentStateError("Cannot create payment: invoice status is VOIDED")
        if invoice.status != InvoiceStatus.ISSUED.value:
            raise PaymentStateError(
                f"Cannot create payment: invoice must be ISSUED, got {invoice.status}"
            )

        async with atomic(self.session):
            payment = InvoicePayment(
                invoice_id=invoice_id,
                amount_cents=amount_cents,
                payment_received_at=_as_utc(payment_received_at),
                payment_posted_at=_as_utc(payment_posted_at),
                bank_deposit_at=_as_utc(bank_deposit_at) if bank_deposit_at else None,
                posted_by_user_id=posted_by_user_id,
                backdate_reason=reason,
                source=source,
            )
            self.session.add(payment)
            await self.session.flush()

            snapshot = await self.snapshots.create_or_get_snapshot(invoice_id, amount_cents)
            settlement = await self.commissions.settle_for_payment(payment.invoice_payment_id)

            await record_audit(
                self.session,
                entity_type="invoice_payment",
                entity_id=payment.invoice_payment_id,
                action="payment_recorded",
                actor_user_id=posted_by_user_id,
                after={
                    "invoiceId": str(invoice_id),
                    "amountCents": amount_cents,
                    "paymentPostedAt": payment.payment_posted_at.isoformat(),
                    "commissionEventsCreated": settlement.created,
                },
            )

        warning = await self.find_duplicates(payment)
        if warning is not None:
            logger.warning(
                "Possible duplicate payment %s on invoice %s: %d similar payment(s)",
                payment.invoice_payment_id,
                invoice_id,
                len(warning.matches),
            )

        logger.info(
            "Recorded payment %s of %d cents on invoice %s",
            payment.invoice_payment_id,
            amount_cents,
            invoice_id,
        )
        return RecordedPayment(
            payment=payment,
            snapshot=snapshot,
            settlement=settlement,
            duplicate_warning=warning,
        )

    async def find_duplicates(self, payment: InvoicePayment) -> DuplicateWarning | None:
        """Other payments with the same amount posted the same UTC day or within 3 days."""
        posted = _as_utc(payment.payment_posted_at)
        result = await self.session.execute(
            select(InvoicePayment)
            .where(
                InvoicePayment.invoice_id == payment.invoice_id,
                InvoicePayment.amount_cents == payment.amount_cents,
                InvoicePayment.invoice_payment_id != payment.invoice_payment_id,
            )
            .order_by(InvoicePayment.payment_posted_at)
        )

        matches = []
        for other in result.scalars().all():
            other_posted = _as_utc(other.payment_posted_at)
            same_day = other_posted.date() == posted.date()
            if same_day or abs(other_posted - posted) <= DUPLICATE_WINDOW:
                matches.append(
                    {
                        "payment_id": other.invoice_payment_id,
                        "amount_cents": other.amount_cents,
                        "payment_posted_at": other_posted,
                        "posted_by_user_id": other.posted_by_user_id,
                        "created_at": other.created_at,
                    }
                )

        if not matches:
            return None
        return DuplicateWarning(suspected=True, matches=matches)

    async def get_payments_ledger(self, invoice_id: UUID) -> list[InvoicePayment]:
        """Payments for an invoice, most recently posted first."""
        invoice = await self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        result = await self.session.execute(
            select(InvoicePayment)
            .where(InvoicePayment.invoice_id == invoice_id)
            .order_by(
                InvoicePayment.payment_posted_at.desc(),
                InvoicePayment.created_at.desc(),
            )
        )
        return list(result.scalars().all())
