"""Invoice composition, routing and issuance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from settlement_engine.calculators.cutoff import BusinessCalendar
from settlement_engine.calculators.money import to_cents, to_decimal
from settlement_engine.config import get_settings
from settlement_engine.database import atomic, insert_ignore
from settlement_engine.errors import (
    AlreadyIssuedError,
    HoursNotReadyError,
    InvoiceNotFoundError,
    InvoiceRoutingBlockedError,
    LineItemNotFoundError,
    OrderNotFoundError,
    RoutingInputError,
    StateConflictError,
)
from settlement_engine.models import (
    HoursApprovalStatus,
    HoursEntry,
    Invoice,
    InvoiceLineItem,
    InvoiceLineType,
    InvoicePayment,
    InvoiceSequence,
    LineUnit,
    Order,
    OrderStatus,
    utcnow,
)
from settlement_engine.services.approval_router import (
    ADMIN_OVERRIDE_SENTINEL,
    REASON_MISSED_CUTOFF,
    RoutingAction,
    RoutingOutcome,
    evaluate_routing,
)
from settlement_engine.services.audit import record_audit
from settlement_engine.services.issued_snapshot import (
    IssuedInvoiceSnapshot,
    SnapshotCustomer,
    SnapshotHoursEntry,
    SnapshotLineItem,
    SnapshotOrder,
)
from settlement_engine.services.settings_service import SettingsService
from settlement_engine.services.state_machine import (
    ApprovalStatus,
    InvoiceStateMachine,
    InvoiceStatus,
)

logger = logging.getLogger(__name__)

INVOICE_SEQUENCE_KEY = "default"
LABOR_LINE_DESCRIPTION = "Labor - Approved Hours"

# SD hour buckets: (unit, description, multiplier on base + delta rate)
SHIFT_DIFFERENTIAL_BUCKETS: tuple[tuple[str, str, Decimal], ...] = (
    (LineUnit.REG_SD, "Labor - Shift Differential (REG)", Decimal("1")),
    (LineUnit.OT_SD, "Labor - Shift Differential (OT)", Decimal("1.5")),
    (LineUnit.DT_SD, "Labor - Shift Differential (DT)", Decimal("2.0")),
)
SD_SORT_ORDER_BASE = 1000


def format_invoice_number(number: int) -> str:
    """Render a sequence value as an invoice number, e.g. INV-000042."""
    return f"INV-{number:06d}"


def compute_line_cents(amount: Decimal, quantity: Decimal | None) -> tuple[int, int]:
    """Unit rate and line total in cents for ``amount`` x ``quantity``."""
    qty = to_decimal(quantity) if quantity is not None else Decimal("1")
    return to_cents(amount), to_cents(to_decimal(amount) * qty)


@dataclass(frozen=True)
class HoursReadiness:
    """Approval state of an order's hours."""

    pending_entries: int
    rejected_entries: int
    approved_hours: Decimal


@dataclass(frozen=True)
class PaidState:
    """Derived payment position of an invoice."""

    total_paid_cents: int
    balance_cents: int
    is_paid: bool


class InvoiceService:
    """Service for the invoice lifecycle.

    Operations:
    - create_draft_for_order: Compose a DRAFT invoice from approved hours
    - add/update/remove_line_item: Edit DRAFT line items
    - get_routing_outcome: Evaluate cutoff and approval routing
    - issue: DRAFT -> ISSUED with SD billing, numbering and a frozen snapshot
    - override_routing / approve_routed_invoice: Admin handling of routed invoices
    - compute_paid_state: Paid-to-date and balance
    """

    def __init__(self, session: AsyncSession, calendar: BusinessCalendar | None = None):
        self.session = session
        self.calendar = calendar or BusinessCalendar(get_settings().business_timezone)
        self.settings = SettingsService(session)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        """Load an invoice with line items, customer and order."""
        query = (
            select(Invoice)
            .where(Invoice.invoice_id == invoice_id)
            .options(
                selectinload(Invoice.line_items),
                selectinload(Invoice.customer),
                selectinload(Invoice.order),
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _require_invoice(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        invoice = await self.get_invoice(invoice_id, for_update=for_update)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    async def hours_readiness(self, order_id: UUID | None) -> HoursReadiness:
        """Count pending/rejected entries and sum approved hours for an order."""
        if order_id is None:
            return HoursReadiness(0, 0, Decimal("0"))

        result = await self.session.execute(
            select(
                HoursEntry.approval_status,
                func.count(HoursEntry.hours_entry_id),
                func.coalesce(func.sum(HoursEntry.total_hours), 0),
            )
            .where(HoursEntry.order_id == order_id)
            .group_by(HoursEntry.approval_status)
        )
        counts: dict[str, int] = {}
        approved = Decimal("0")
        for status, count, hours in result.all():
            counts[status] = count
            if status == HoursApprovalStatus.APPROVED:
                approved = to_decimal(hours)

        return HoursReadiness(
            pending_entries=counts.get(HoursApprovalStatus.PENDING, 0),
            rejected_entries=counts.get(HoursApprovalStatus.REJECTED, 0),
            approved_hours=approved,
        )

    async def _approved_entries(self, order_id: UUID | None) -> list[HoursEntry]:
        if order_id is None:
            return []
        result = await self.session.execute(
            select(HoursEntry)
            .where(
                HoursEntry.order_id == order_id,
                HoursEntry.approval_status == HoursApprovalStatus.APPROVED,
            )
            .options(selectinload(HoursEntry.lines))
            .order_by(HoursEntry.period_start)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Draft composition
    # ------------------------------------------------------------------

    async def create_draft_for_order(
        self,
        order_id: UUID,
        bill_rate: Decimal = Decimal("0"),
    ) -> Invoice:
        """Create a DRAFT invoice for a filled order, or return the existing one."""
        result = await self.session.execute(
            select(Invoice.invoice_id)
            .where(Invoice.order_id == order_id)
            .order_by(Invoice.created_at)
            .limit(1)
        )
        existing_id = result.scalar_one_or_none()
        if existing_id is not None:
            return await self._require_invoice(existing_id)

        order = await self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status != OrderStatus.FILLED:
            raise StateConflictError(
                f"Cannot create invoice: order status must be FILLED, got {order.status}"
            )

        readiness = await self.hours_readiness(order_id)
        self._check_hours_ready(readiness, "create invoice")

        async with atomic(self.session):
            unit_rate_cents, line_total_cents = compute_line_cents(
                bill_rate, readiness.approved_hours
            )
            invoice = Invoice(
                customer_id=order.customer_id,
                order_id=order_id,
                status=InvoiceStatus.DRAFT.value,
                approval_status=ApprovalStatus.PENDING.value,
                line_items=[
                    InvoiceLineItem(
                        line_type=InvoiceLineType.TRADE_LABOR,
                        description=LABOR_LINE_DESCRIPTION,
                        amount=to_decimal(bill_rate),
                        quantity=readiness.approved_hours,
                        unit_rate_cents=unit_rate_cents,
                        line_total_cents=line_total_cents,
                    )
                ],
            )
            self._recompute_totals(invoice)
            self.session.add(invoice)
            await self.session.flush()

        logger.info("Created draft invoice %s for order %s", invoice.invoice_id, order_id)
        return await self._require_invoice(invoice.invoice_id)

    async def add_line_item(
        self,
        invoice_id: UUID,
        *,
        description: str,
        amount: Decimal,
        quantity: Decimal = Decimal("1"),
        line_type: str = InvoiceLineType.OTHER,
        trade_code: str | None = None,
        state: str | None = None,
        is_commissionable: bool = True,
    ) -> InvoiceLineItem:
        """Add a line to a DRAFT invoice and recompute totals."""
        async with atomic(self.session):
            invoice = await self._require_editable(invoice_id)
            unit_rate_cents, line_total_cents = compute_line_cents(amount, quantity)
            item = InvoiceLineItem(
                line_type=line_type,
                description=description,
                amount=to_decimal(amount),
                quantity=to_decimal(quantity),
                unit_rate_cents=unit_rate_cents,
                line_total_cents=line_total_cents,
                trade_code=trade_code,
                state=state,
                is_commissionable=is_commissionable,
                sort_order=len(invoice.line_items),
            )
            invoice.line_items.append(item)
            self._recompute_totals(invoice)
            await self.session.flush()
        return item

    async def update_line_item(
        self,
        invoice_id: UUID,
        line_item_id: UUID,
        *,
        description: str | None = None,
        amount: Decimal | None = None,
        quantity: Decimal | None = None,
    ) -> InvoiceLineItem:
        """Edit a DRAFT line. Cent fields are re-derived from amount x quantity."""
        async with atomic(self.session):
            invoice = await self._require_editable(invoice_id)
            item = self._find_line(invoice, line_item_id)
            if description is not None:
                item.description = description
            if amount is not None:
                item.amount = to_decimal(amount)
            if quantity is not None:
                item.quantity = to_decimal(quantity)
            item.unit_rate_cents, item.line_total_cents = compute_line_cents(
                item.amount, item.quantity
            )
            self._recompute_totals(invoice)
            await self.session.flush()
        return item

    async def remove_line_item(self, invoice_id: UUID, line_item_id: UUID) -> Invoice:
        """Delete a DRAFT line and recompute totals."""
        async with atomic(self.session):
            invoice = await self._require_editable(invoice_id)
            invoice.line_items.remove(self._find_line(invoice, line_item_id))
            self._recompute_totals(invoice)
            await self.session.flush()
        return invoice

    async def _require_editable(self, invoice_id: UUID) -> Invoice:
        invoice = await self._require_invoice(invoice_id)
        if not InvoiceStateMachine.can_edit_lines(invoice.status):
            raise StateConflictError(
                f"Only DRAFT invoices can be edited (status is {invoice.status})"
            )
        return invoice

    @staticmethod
    def _find_line(invoice: Invoice, line_item_id: UUID) -> InvoiceLineItem:
        for item in invoice.line_items:
            if item.invoice_line_item_id == line_item_id:
                return item
        raise LineItemNotFoundError(line_item_id)

    @staticmethod
    def _recompute_totals(invoice: Invoice) -> None:
        subtotal = sum(item.line_total_cents for item in invoice.line_items)
        invoice.subtotal_cents = subtotal
        invoice.total_cents = subtotal

    @staticmethod
    def _check_hours_ready(readiness: HoursReadiness, action: str) -> None:
        if readiness.pending_entries:
            raise HoursNotReadyError(f"Cannot {action}: hours are pending approval")
        if readiness.rejected_entries:
            raise HoursNotReadyError(f"Cannot {action}: rejected hours must be resolved")
        if readiness.approved_hours <= 0:
            raise HoursNotReadyError(
                f"Cannot {action}: approved hours sum must be greater than 0"
            )

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def get_routing_outcome(
        self,
        invoice_id: UUID,
        now: datetime | None = None,
        holiday_week: bool = False,
    ) -> RoutingOutcome:
        """Evaluate routing for an invoice without changing it."""
        invoice = await self._require_invoice(invoice_id)
        return await self._evaluate_routing(invoice, now or utcnow(), holiday_week)

    async def _evaluate_routing(
        self,
        invoice: Invoice,
        now: datetime,
        holiday_week: bool,
    ) -> RoutingOutcome:
        if invoice.order_id is None:
            raise RoutingInputError("Invoice must belong to an order to evaluate routing")
        if invoice.customer is None:
            raise RoutingInputError("Invoice customer not found")

        result = await self.session.execute(
            select(func.max(HoursEntry.period_end)).where(
                HoursEntry.order_id == invoice.order_id
            )
        )
        period_end = result.scalar_one_or_none()
        if period_end is None:
            raise RoutingInputError("Order has no hours entries to derive a period end")

        cutoff = self.calendar.get_cutoff_for_invoice_period(period_end, holiday_week)
        return evaluate_routing(
            approval_status=invoice.approval_status,
            approval_note=invoice.approval_note,
            requires_customer_approval=invoice.customer.requires_invoice_approval,
            cutoff_at=cutoff,
            now=now,
        )

    async def override_routing(
        self,
        invoice_id: UUID,
        user_id: UUID,
        note: str | None = None,
        now: datetime | None = None,
    ) -> Invoice:
        """Record an admin override on a routed DRAFT invoice."""
        now = now or utcnow()
        async with atomic(self.session):
            invoice = await self._require_invoice(invoice_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise StateConflictError("Only DRAFT invoices can have routing overridden")
            if not invoice.routing_reason and invoice.routed_to_admin_at is None:
                raise StateConflictError(
                    "Can only override routing for invoices that have been routed"
                )

            trimmed = (note or "").strip()
            invoice.approval_status = ApprovalStatus.APPROVED.value
            invoice.approval_note = (
                f"{ADMIN_OVERRIDE_SENTINEL}: {trimmed}" if trimmed else ADMIN_OVERRIDE_SENTINEL
            )
            invoice.approved_at = now
            invoice.approved_by_user_id = user_id
            invoice.routed_by_user_id = user_id
            await record_audit(
                self.session,
                entity_type="invoice",
                entity_id=invoice.invoice_id,
                action="routing_override",
                actor_user_id=user_id,
                after={"approvalNote": invoice.approval_note},
            )
        logger.info("Routing overridden for invoice %s by %s", invoice_id, user_id)
        return invoice

    async def list_routed_invoices(self) -> list[Invoice]:
        """DRAFT invoices awaiting admin review, most recently routed first."""
        result = await self.session.execute(
            select(Invoice)
            .where(
                Invoice.status == InvoiceStatus.DRAFT.value,
                Invoice.routed_to_admin_at.is_not(None),
            )
            .order_by(Invoice.routed_to_admin_at.desc())
        )
        return list(result.scalars().all())

    async def approve_routed_invoice(
        self,
        invoice_id: UUID,
        admin_user_id: UUID,
        now: datetime | None = None,
    ) -> Invoice:
        """Approve a routed invoice and clear it from the review queue."""
        now = now or utcnow()
        async with atomic(self.session):
            invoice = await self._require_invoice(invoice_id)
            if invoice.routed_to_admin_at is None:
                raise StateConflictError("Invoice is not routed for admin review")
            invoice.routed_to_admin_at = None
            invoice.approved_at = now
            invoice.approved_by_user_id = admin_user_id
            invoice.approval_status = ApprovalStatus.APPROVED.value
            await record_audit(
                self.session,
                entity_type="invoice",
                entity_id=invoice.invoice_id,
                action="routed_invoice_approved",
                actor_user_id=admin_user_id,
            )
        return invoice

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue(
        self,
        invoice_id: UUID,
        issued_by_user_id: UUID | None,
        now: datetime | None = None,
        holiday_week: bool = False,
    ) -> Invoice:
        """Issue a DRAFT invoice.

        Preconditions are checked before any write. A blocked routing
        outcome is persisted for admin review and then rejected. The
        issuance itself commits or rolls back as one unit.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            InvalidTransitionError: If the invoice is not DRAFT
            AlreadyIssuedError: If a number was already assigned
            HoursNotReadyError: If hours are pending, rejected or absent
            InvoiceRoutingBlockedError: If routing does not allow issuance
        """
        now = now or utcnow()
        invoice = await self._require_invoice(invoice_id)
        self._check_issuable(invoice)
        self._check_hours_ready(await self.hours_readiness(invoice.order_id), "issue invoice")

        outcome = await self._evaluate_routing(invoice, now, holiday_week)
        if not outcome.may_issue and not self._approved_past_cutoff(invoice, outcome):
            await self._persist_routing(invoice, outcome, now)
            logger.warning(
                "Invoice %s routed instead of issued: %s (%s)",
                invoice_id,
                outcome.action.value,
                "; ".join(outcome.reasons),
            )
            raise InvoiceRoutingBlockedError(outcome.action.value, outcome.reasons)

        async with atomic(self.session):
            invoice = await self._require_invoice(invoice_id, for_update=True)
            self._check_issuable(invoice)

            entries = await self._approved_entries(invoice.order_id)
            await self._rebuild_shift_differential_lines(invoice, entries)
            self._recompute_totals(invoice)

            invoice_number = await self._allocate_invoice_number()
            snapshot = IssuedInvoiceSnapshot(
                invoice_id=invoice.invoice_id,
                invoice_number=invoice_number,
                issued_at=now,
                issued_by_user_id=issued_by_user_id,
                customer=SnapshotCustomer(
                    id=invoice.customer.customer_id, name=invoice.customer.name
                ),
                order=(
                    SnapshotOrder(
                        id=invoice.order.order_id,
                        status=invoice.order.status,
                        customer_id=invoice.order.customer_id,
                        location_id=invoice.order.location_id,
                    )
                    if invoice.order is not None
                    else None
                ),
                line_items=[SnapshotLineItem.model_validate(li) for li in invoice.line_items],
                approved_hours_entries=[SnapshotHoursEntry.model_validate(e) for e in entries],
                subtotal_cents=invoice.subtotal_cents,
                total_cents=invoice.total_cents,
                invoice_footer_text=await self.settings.get_invoice_footer_text(),
            )

            InvoiceStateMachine.validate_transition(invoice.status, InvoiceStatus.ISSUED)
            invoice.invoice_number = invoice_number
            invoice.issued_snapshot_json = snapshot.model_dump(mode="json")
            invoice.status = InvoiceStatus.ISSUED.value
            invoice.issued_at = now
            invoice.issued_by_user_id = issued_by_user_id
            if invoice.invoice_date is None:
                invoice.invoice_date = now

            await record_audit(
                self.session,
                entity_type="invoice",
                entity_id=invoice.invoice_id,
                action="status_change:DRAFT:ISSUED",
                actor_user_id=issued_by_user_id,
                after={"invoiceNumber": invoice_number, "totalCents": invoice.total_cents},
            )
            await self.session.flush()

        logger.info(
            "Issued invoice %s as %s (total=%d cents)",
            invoice_id,
            invoice.invoice_number,
            invoice.total_cents,
        )
        return invoice

    @staticmethod
    def _check_issuable(invoice: Invoice) -> None:
        InvoiceStateMachine.validate_transition(
            invoice.status, InvoiceStatus.ISSUED, "Only DRAFT invoices can be issued."
        )
        if invoice.invoice_number:
            raise AlreadyIssuedError(invoice.invoice_id, invoice.invoice_number)

    @staticmethod
    def _approved_past_cutoff(invoice: Invoice, outcome: RoutingOutcome) -> bool:
        """A missed cutoff does not block an invoice already approved by an admin."""
        return (
            outcome.action == RoutingAction.ROUTE_ADMIN
            and REASON_MISSED_CUTOFF in outcome.reasons
            and invoice.approval_status == ApprovalStatus.APPROVED
        )

    async def _persist_routing(
        self,
        invoice: Invoice,
        outcome: RoutingOutcome,
        now: datetime,
    ) -> None:
        async with atomic(self.session):
            invoice.routed_to_admin_at = now
            invoice.routing_reason = "; ".join(outcome.reasons)
            await record_audit(
                self.session,
                entity_type="invoice",
                entity_id=invoice.invoice_id,
                action="routed",
                after=outcome.to_dict(),
            )

    async def _rebuild_shift_differential_lines(
        self,
        invoice: Invoice,
        entries: list[HoursEntry],
    ) -> None:
        """Replace SD lines from the REG_SD/OT_SD/DT_SD hour buckets."""
        for item in [
            li for li in invoice.line_items if li.line_type == InvoiceLineType.SHIFT_DIFFERENTIAL
        ]:
            invoice.line_items.remove(item)

        buckets: dict[str, Decimal] = {unit: Decimal("0") for unit, _, _ in SHIFT_DIFFERENTIAL_BUCKETS}
        for entry in entries:
            for line in entry.lines:
                if line.unit in buckets:
                    buckets[line.unit] += to_decimal(line.quantity)

        if not any(hours > 0 for hours in buckets.values()):
            await self.session.flush()
            return

        base_rate = next(
            (
                to_decimal(li.amount)
                for li in invoice.line_items
                if li.line_type == InvoiceLineType.TRADE_LABOR
            ),
            Decimal("0"),
        )
        delta = to_decimal(invoice.order.sd_bill_delta_rate) if invoice.order else Decimal("0")

        for index, (unit, description, multiplier) in enumerate(SHIFT_DIFFERENTIAL_BUCKETS):
            hours = buckets[unit]
            if hours <= 0:
                continue
            rate = (base_rate + delta) * multiplier
            unit_rate_cents, line_total_cents = compute_line_cents(rate, hours)
            invoice.line_items.append(
                InvoiceLineItem(
                    line_type=InvoiceLineType.SHIFT_DIFFERENTIAL,
                    description=description,
                    amount=rate,
                    quantity=hours,
                    unit_rate_cents=unit_rate_cents,
                    line_total_cents=line_total_cents,
                    sort_order=SD_SORT_ORDER_BASE + index,
                )
            )
        await self.session.flush()

    async def _allocate_invoice_number(self) -> str:
        """Take the next number from the locked counter row."""
        await self.session.execute(
            insert_ignore(self.session, InvoiceSequence)
            .values(key=INVOICE_SEQUENCE_KEY, next_number=1, updated_at=utcnow())
            .on_conflict_do_nothing(index_elements=["key"])
        )
        result = await self.session.execute(
            select(InvoiceSequence)
            .where(InvoiceSequence.key == INVOICE_SEQUENCE_KEY)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        sequence = result.scalar_one()
        current = sequence.next_number
        sequence.next_number = current + 1
        await self.session.flush()
        return format_invoice_number(current)

    # ------------------------------------------------------------------
    # Payments view
    # ------------------------------------------------------------------

    async def compute_paid_state(self, invoice_id: UUID) -> PaidState:
        """Paid-to-date, remaining balance (never negative) and paid flag."""
        invoice = await self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)

        result = await self.session.execute(
            select(func.coalesce(func.sum(InvoicePayment.amount_cents), 0)).where(
                InvoicePayment.invoice_id == invoice_id
            )
        )
        total_paid = int(result.scalar_one())
        return PaidState(
            total_paid_cents=total_paid,
            balance_cents=max(0, invoice.total_cents - total_paid),
            is_paid=total_paid >= invoice.total_cents,
        )
