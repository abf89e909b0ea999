"""Per-payment commission settlement and the commission packet."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.commission import (
    allocate_payment,
    commission_rule,
    compute_commission_cents,
    days_to_paid,
    is_late_posted,
    resolve_multiplier,
    PayoutTier,
)
from settlement_engine.calculators.money import cents_to_dollars, format_fixed
from settlement_engine.database import atomic, insert_ignore
from settlement_engine.errors import InvoiceNotFoundError, PaymentNotFoundError
from settlement_engine.models import (
    AppUser,
    CommissionAssignment,
    CommissionEvent,
    Customer,
    Invoice,
    InvoicePayment,
)
from settlement_engine.services.margin_snapshot_service import (
    TradeMarginSnapshotService,
    get_active_commission_plan,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of settling one payment.

    ``created`` counts events written by this call; re-running settlement
    for the same payment returns the existing events with ``created=0``.
    """

    invoice_payment_id: UUID
    created: int
    events: list[CommissionEvent]
    days_to_paid: int
    payout_multiplier: Decimal
    proportion: Decimal
    revenue_for_payment_cents: Decimal
    margin_for_payment_cents: Decimal


@dataclass(frozen=True)
class CommissionPacketRow:
    """One exported commission line."""

    invoice_number: str
    invoice_id: str
    customer_name: str
    payment_id: str
    payment_posted_at: str
    payment_amount: str
    commission_rate_applied: str
    commission_amount: str
    salesperson_user_id: str
    salesperson_email: str
    commission_rule: str

    def as_list(self) -> list[str]:
        return [
            self.invoice_number,
            self.invoice_id,
            self.customer_name,
            self.payment_id,
            self.payment_posted_at,
            self.payment_amount,
            self.commission_rate_applied,
            self.commission_amount,
            self.salesperson_user_id,
            self.salesperson_email,
            self.commission_rule,
        ]


def format_iso_utc(value: datetime) -> str:
    """ISO-8601 UTC timestamp with milliseconds, e.g. 2025-01-15T14:00:00.000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class CommissionSettlementService:
    """Computes commission events for payments.

    Settlement steps:
    1. Ensure the invoice's margin snapshot exists
    2. Days to paid from the invoice base date to payment receipt
    3. Payout multiplier from the active plan's tiers, else the fallback ladder
    4. Allocate the payment's share of the invoice margin
    5. One event per assignment effective at receipt, inserted idempotently
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.snapshots = TradeMarginSnapshotService(session)

    async def settle_for_payment(self, invoice_payment_id: UUID) -> SettlementResult:
        """Settle commissions for one payment. Safe to call repeatedly."""
        async with atomic(self.session):
            payment = await self.session.get(InvoicePayment, invoice_payment_id)
            if payment is None:
                raise PaymentNotFoundError(invoice_payment_id)
            invoice = await self.session.get(Invoice, payment.invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(payment.invoice_id)

            snapshot = (
                await self.snapshots.create_or_get_snapshot(
                    invoice.invoice_id, payment.amount_cents
                )
            ).snapshot

            earned_at = payment.payment_received_at
            posted_at = payment.payment_posted_at
            days = days_to_paid(earned_at, invoice.issued_at or invoice.invoice_date or earned_at)

            plan = await get_active_commission_plan(self.session)
            tiers = (
                [PayoutTier(t.min_days, t.max_days, t.multiplier) for t in plan.tiers]
                if plan is not None
                else []
            )
            multiplier = resolve_multiplier(days, tiers)
            rate = snapshot.commission_rate_snapshot
            late = is_late_posted(
                earned_at,
                posted_at,
                snapshot.bank_lag_days_snapshot,
                snapshot.posting_grace_days_snapshot,
            )

            paid_to_date = await self._paid_to_date_cents(invoice.invoice_id)
            allocation = allocate_payment(invoice.total_cents, paid_to_date, payment.amount_cents)
            proportion = allocation.proportion
            margin_for_payment = Decimal(snapshot.trade_margin_cents) * proportion
            revenue_for_payment = Decimal(snapshot.trade_revenue_paid_cents) * proportion

            created = 0
            for assignment in await self._eligible_assignments(invoice.order_id, earned_at):
                raw_cents, payable_cents = compute_commission_cents(
                    margin_for_payment,
                    rate,
                    assignment.split_percent if assignment.split_percent is not None else Decimal("1"),
                    multiplier,
                )
                stmt = (
                    insert_ignore(self.session, CommissionEvent)
                    .values(
                        invoice_payment_id=payment.invoice_payment_id,
                        commission_assignment_id=assignment.commission_assignment_id,
                        user_id=assignment.user_id,
                        earned_at=earned_at,
                        posted_at=posted_at,
                        days_to_paid=days,
                        commission_rate_snapshot=rate,
                        payout_multiplier_snapshot=multiplier,
                        raw_commission_cents=raw_cents,
                        payable_commission_cents=payable_cents,
                        is_late_posted=late,
                    )
                    .on_conflict_do_nothing(
                        index_elements=["invoice_payment_id", "commission_assignment_id"]
                    )
                )
                result = await self.session.execute(stmt)
                created += max(result.rowcount, 0)

            events = await self.get_events_for_payment(payment.invoice_payment_id)

        if created:
            logger.info(
                "Settled payment %s: %d commission event(s), days_to_paid=%d, multiplier=%s",
                invoice_payment_id,
                created,
                days,
                multiplier,
            )
        return SettlementResult(
            invoice_payment_id=invoice_payment_id,
            created=created,
            events=events,
            days_to_paid=days,
            payout_multiplier=multiplier,
            proportion=proportion,
            revenue_for_payment_cents=revenue_for_payment,
            margin_for_payment_cents=margin_for_payment,
        )

    async def get_events_for_payment(self, invoice_payment_id: UUID) -> list[CommissionEvent]:
        result = await self.session.execute(
            select(CommissionEvent)
            .where(CommissionEvent.invoice_payment_id == invoice_payment_id)
            .order_by(CommissionEvent.created_at, CommissionEvent.commission_assignment_id)
        )
        return list(result.scalars().all())

    async def _paid_to_date_cents(self, invoice_id: UUID) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(InvoicePayment.amount_cents), 0)).where(
                InvoicePayment.invoice_id == invoice_id
            )
        )
        return int(result.scalar_one())

    async def _eligible_assignments(
        self,
        order_id: UUID | None,
        earned_at: datetime,
    ) -> list[CommissionAssignment]:
        if order_id is None:
            return []
        result = await self.session.execute(
            select(CommissionAssignment)
            .where(
                CommissionAssignment.order_id == order_id,
                or_(
                    CommissionAssignment.effective_from.is_(None),
                    CommissionAssignment.effective_from <= earned_at,
                ),
                or_(
                    CommissionAssignment.effective_to.is_(None),
                    CommissionAssignment.effective_to >= earned_at,
                ),
            )
            .order_by(CommissionAssignment.created_at)
        )
        return list(result.scalars().all())

    async def get_commission_packet_rows(
        self,
        start: datetime,
        end: datetime,
    ) -> list[CommissionPacketRow]:
        """Events posted within [start, end], oldest first."""
        result = await self.session.execute(
            select(CommissionEvent, InvoicePayment, Invoice, Customer, AppUser)
            .join(
                InvoicePayment,
                CommissionEvent.invoice_payment_id == InvoicePayment.invoice_payment_id,
            )
            .join(Invoice, InvoicePayment.invoice_id == Invoice.invoice_id)
            .join(Customer, Invoice.customer_id == Customer.customer_id)
            .join(AppUser, CommissionEvent.user_id == AppUser.user_id)
            .where(CommissionEvent.posted_at >= start, CommissionEvent.posted_at <= end)
            .order_by(CommissionEvent.posted_at, CommissionEvent.created_at)
        )

        rows: list[CommissionPacketRow] = []
        for event, payment, invoice, customer, user in result.all():
            rows.append(
                CommissionPacketRow(
                    invoice_number=invoice.invoice_number or "",
                    invoice_id=str(invoice.invoice_id),
                    customer_name=customer.name,
                    payment_id=str(payment.invoice_payment_id),
                    payment_posted_at=format_iso_utc(payment.payment_posted_at),
                    payment_amount=format_fixed(cents_to_dollars(payment.amount_cents), 2),
                    commission_rate_applied=format_fixed(event.commission_rate_snapshot, 4),
                    commission_amount=format_fixed(
                        cents_to_dollars(event.payable_commission_cents), 2
                    ),
                    salesperson_user_id=str(user.user_id),
                    salesperson_email=user.email,
                    commission_rule=commission_rule(
                        event.payout_multiplier_snapshot, event.is_late_posted
                    ),
                )
            )
        return rows
