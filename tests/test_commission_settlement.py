"""Tests for per-payment commission settlement and the commission packet."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from settlement_engine.errors import PaymentNotFoundError
from settlement_engine.exports import commission_packet_csv
from settlement_engine.models import CommissionEvent
from settlement_engine.services.commission_service import (
    CommissionSettlementService,
    format_iso_utc,
)
from settlement_engine.services.invoice_service import InvoiceService
from settlement_engine.services.payment_ledger import PaymentLedger

UTC = timezone.utc

ISSUED_AT = datetime(2025, 3, 12, 12, 0, tzinfo=UTC)
RECEIVED = datetime(2025, 3, 20, 12, 0, tzinfo=UTC)
INVOICE_TOTAL = 266600
MARGIN = 106449


@pytest_asyncio.fixture
async def invoice(session, world):
    service = InvoiceService(session)
    draft = await service.create_draft_for_order(world.order.order_id, Decimal("50"))
    return await service.issue(draft.invoice_id, None, now=ISSUED_AT)


async def pay(session, invoice, amount, received=RECEIVED, posted=None):
    posted = posted or received
    return await PaymentLedger(session).record_payment(
        invoice.invoice_id, amount, received, posted, now=posted
    )


class TestSettlement:
    """Test commission events created from payments."""

    @pytest.mark.asyncio
    async def test_settlement_is_idempotent(self, session, factory, world, invoice):
        """Test re-settling a payment creates nothing new."""
        await factory.assignment(world.order, world.salesperson)
        recorded = await pay(session, invoice, INVOICE_TOTAL)
        payment_id = recorded.payment.invoice_payment_id

        again = await CommissionSettlementService(session).settle_for_payment(payment_id)

        assert recorded.settlement.created == 1
        assert again.created == 0
        assert [e.commission_event_id for e in again.events] == [
            e.commission_event_id for e in recorded.settlement.events
        ]
        count = await session.execute(
            select(func.count()).select_from(CommissionEvent).where(
                CommissionEvent.invoice_payment_id == payment_id
            )
        )
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_event_snapshots(self, session, factory, world, invoice):
        await factory.assignment(world.order, world.salesperson)

        recorded = await pay(session, invoice, INVOICE_TOTAL)

        event = recorded.settlement.events[0]
        assert event.user_id == world.salesperson.user_id
        assert event.earned_at == RECEIVED
        assert event.posted_at == RECEIVED
        assert event.days_to_paid == 8
        assert event.commission_rate_snapshot == Decimal("0.10")
        assert event.payout_multiplier_snapshot == Decimal("1")
        assert event.is_late_posted is False
        assert recorded.settlement.proportion == Decimal("1")
        assert recorded.settlement.margin_for_payment_cents == Decimal(MARGIN)

    @pytest.mark.asyncio
    async def test_split_between_salespeople(self, session, factory, world, invoice):
        partner = await factory.user("Pia Partner")
        await factory.assignment(world.order, world.salesperson, split_percent="0.6")
        await factory.assignment(world.order, partner, split_percent="0.4")

        recorded = await pay(session, invoice, INVOICE_TOTAL)

        by_user = {e.user_id: e.raw_commission_cents for e in recorded.settlement.events}
        assert by_user == {world.salesperson.user_id: 6387, partner.user_id: 4258}

    @pytest.mark.asyncio
    async def test_no_assignments(self, session, invoice):
        recorded = await pay(session, invoice, INVOICE_TOTAL)

        assert recorded.settlement.created == 0
        assert recorded.settlement.events == []

    @pytest.mark.asyncio
    async def test_assignment_window(self, session, factory, world, invoice):
        """Test only assignments effective at receipt earn commission."""
        await factory.assignment(
            world.order, world.salesperson, effective_to=RECEIVED - timedelta(days=1)
        )
        current = await factory.user("Cal Current")
        await factory.assignment(world.order, current, effective_from=RECEIVED - timedelta(days=1))

        recorded = await pay(session, invoice, INVOICE_TOTAL)

        assert [e.user_id for e in recorded.settlement.events] == [current.user_id]

    @pytest.mark.asyncio
    async def test_slow_payment_reduces_payout(self, session, factory, world, invoice):
        """Test 50 days to paid pays at 0.75."""
        await factory.assignment(world.order, world.salesperson)
        received = ISSUED_AT + timedelta(days=50)

        recorded = await pay(session, invoice, INVOICE_TOTAL, received=received)

        event = recorded.settlement.events[0]
        assert event.days_to_paid == 50
        assert event.payout_multiplier_snapshot == Decimal("0.75")
        assert event.raw_commission_cents == 10645
        assert event.payable_commission_cents == 7984

    @pytest.mark.asyncio
    async def test_plan_tiers_override_ladder(self, session, factory, world, invoice):
        await factory.commission_plan(tiers=[(0, 5, "1"), (6, None, "0.5")])
        await factory.assignment(world.order, world.salesperson)

        recorded = await pay(session, invoice, INVOICE_TOTAL)

        assert recorded.settlement.payout_multiplier == Decimal("0.5")
        assert recorded.settlement.events[0].payable_commission_cents == 5322

    @pytest.mark.asyncio
    async def test_late_posting_flagged(self, session, factory, world, invoice):
        await factory.assignment(world.order, world.salesperson)

        recorded = await pay(
            session, invoice, INVOICE_TOTAL, posted=RECEIVED + timedelta(days=3)
        )

        assert recorded.settlement.events[0].is_late_posted is True

    @pytest.mark.asyncio
    async def test_partial_payments_allocate_incrementally(self, session, factory, world, invoice):
        await factory.assignment(world.order, world.salesperson)

        first = await pay(session, invoice, 200000)
        second = await pay(session, invoice, 66600, received=RECEIVED + timedelta(days=1))

        assert first.settlement.proportion == Decimal(200000) / Decimal(INVOICE_TOTAL)
        assert second.settlement.proportion == Decimal(66600) / Decimal(INVOICE_TOTAL)
        assert second.snapshot.created is False

    @pytest.mark.asyncio
    async def test_unknown_payment(self, session):
        with pytest.raises(PaymentNotFoundError):
            await CommissionSettlementService(session).settle_for_payment(uuid4())


class TestCommissionPacket:
    """Test commission packet rows and CSV export."""

    @pytest.mark.asyncio
    async def test_packet_rows(self, session, factory, world, invoice):
        await factory.assignment(world.order, world.salesperson)
        recorded = await pay(session, invoice, INVOICE_TOTAL)

        rows = await CommissionSettlementService(session).get_commission_packet_rows(
            RECEIVED - timedelta(days=1), RECEIVED + timedelta(days=1)
        )

        assert len(rows) == 1
        row = rows[0]
        assert row.invoice_number == "INV-000001"
        assert row.invoice_id == str(invoice.invoice_id)
        assert row.customer_name == "Acme Industrial"
        assert row.payment_id == str(recorded.payment.invoice_payment_id)
        assert row.payment_posted_at == "2025-03-20T12:00:00.000Z"
        assert row.payment_amount == "2666.00"
        assert row.commission_rate_applied == "0.1000"
        assert row.commission_amount == "106.45"
        assert row.salesperson_user_id == str(world.salesperson.user_id)
        assert row.salesperson_email == world.salesperson.email
        assert row.commission_rule == "tier-0-40"

        csv_text = commission_packet_csv(rows)
        assert csv_text.split("\r\n")[1].startswith("INV-000001,")

    @pytest.mark.asyncio
    async def test_range_excludes_other_postings(self, session, factory, world, invoice):
        await factory.assignment(world.order, world.salesperson)
        await pay(session, invoice, INVOICE_TOTAL)

        rows = await CommissionSettlementService(session).get_commission_packet_rows(
            RECEIVED + timedelta(seconds=1), RECEIVED + timedelta(days=30)
        )

        assert rows == []

    def test_iso_format(self):
        value = datetime(2025, 1, 15, 8, 0, 0, 123456, tzinfo=timezone(timedelta(hours=-6)))
        assert format_iso_utc(value) == "2025-01-15T14:00:00.123Z"
