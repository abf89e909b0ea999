"""Tests for trade margin snapshots."""

from decimal import Decimal

import pytest

from settlement_engine.errors import (
    MissingBurdenRateError,
    MissingJobSiteStateError,
    SnapshotImmutableError,
)
from settlement_engine.models import BurdenCategory, LineUnit
from settlement_engine.services.invoice_service import InvoiceService
from settlement_engine.services.margin_snapshot_service import TradeMarginSnapshotService
from settlement_engine.services.settings_service import COMMISSION_DEFAULT_RATE, SettingsService


async def draft_for(session, order):
    return await InvoiceService(session).create_draft_for_order(order.order_id, Decimal("50"))


class TestTradeMarginSnapshot:
    """Test snapshot creation, idempotency and immutability."""

    @pytest.mark.asyncio
    async def test_snapshot_from_first_payment(self, session, world):
        """Test margin = payment - labor - burden, with settings frozen in."""
        invoice = await draft_for(session, world.order)

        result = await TradeMarginSnapshotService(session).create_or_get_snapshot(
            invoice.invoice_id, 266600
        )

        snapshot = result.snapshot
        assert result.created is True
        assert snapshot.trade_revenue_paid_cents == 266600
        assert snapshot.trade_labor_cost_cents == 142500
        assert snapshot.trade_burden_cost_cents == 17651
        assert snapshot.trade_margin_cents == 266600 - 142500 - 17651
        assert snapshot.commission_rate_snapshot == Decimal("0.10")
        assert snapshot.bank_lag_days_snapshot == 1
        assert snapshot.posting_grace_days_snapshot == 1

    @pytest.mark.asyncio
    async def test_breakdown_recorded(self, session, world):
        invoice = await draft_for(session, world.order)

        result = await TradeMarginSnapshotService(session).create_or_get_snapshot(
            invoice.invoice_id, 100000
        )

        breakdown = result.snapshot.burden_breakdown_json
        assert breakdown["workersComp"]["state"] == "TX"
        assert Decimal(breakdown["workersComp"]["baseWages"]) == Decimal("1350")
        assert Decimal(breakdown["totalBurden"]) == Decimal("176.5125")
        assert Decimal(breakdown["labor"]["totalLaborCost"]) == Decimal("1425")
        assert str(world.trade.trade_id) in breakdown["labor"]["byTrade"]

    @pytest.mark.asyncio
    async def test_later_payments_return_existing(self, session, world):
        """Test the second call returns the first snapshot unchanged."""
        invoice = await draft_for(session, world.order)
        service = TradeMarginSnapshotService(session)

        first = await service.create_or_get_snapshot(invoice.invoice_id, 100000)
        second = await service.create_or_get_snapshot(invoice.invoice_id, 5000)

        assert second.created is False
        assert (
            second.snapshot.trade_margin_snapshot_id == first.snapshot.trade_margin_snapshot_id
        )
        assert second.snapshot.trade_revenue_paid_cents == 100000

    @pytest.mark.asyncio
    async def test_concurrent_writer_wins(self, session, world, monkeypatch):
        """Test a lost insert race returns the row the other writer stored."""
        invoice = await draft_for(session, world.order)
        winner = await TradeMarginSnapshotService(session).create_or_get_snapshot(
            invoice.invoice_id, 123400
        )

        loser = TradeMarginSnapshotService(session)
        lookup = loser.get_snapshot
        calls = []

        async def miss_first_lookup(invoice_id):
            calls.append(invoice_id)
            if len(calls) == 1:
                return None
            return await lookup(invoice_id)

        monkeypatch.setattr(loser, "get_snapshot", miss_first_lookup)
        result = await loser.create_or_get_snapshot(invoice.invoice_id, 5000)

        assert len(calls) == 2
        assert result.created is False
        assert (
            result.snapshot.trade_margin_snapshot_id
            == winner.snapshot.trade_margin_snapshot_id
        )
        assert result.snapshot.trade_revenue_paid_cents == 123400

    @pytest.mark.asyncio
    async def test_settings_changes_do_not_reach_existing_snapshot(self, session, world):
        invoice = await draft_for(session, world.order)
        service = TradeMarginSnapshotService(session)
        await service.create_or_get_snapshot(invoice.invoice_id, 100000)

        await SettingsService(session).set_value(COMMISSION_DEFAULT_RATE, "0.25")
        result = await service.create_or_get_snapshot(invoice.invoice_id, 100000)

        assert result.snapshot.commission_rate_snapshot == Decimal("0.10")

    @pytest.mark.asyncio
    async def test_active_plan_rate_preferred(self, session, factory, world):
        await factory.commission_plan(default_rate="0.08")
        invoice = await draft_for(session, world.order)

        result = await TradeMarginSnapshotService(session).create_or_get_snapshot(
            invoice.invoice_id, 100000
        )

        assert result.snapshot.commission_rate_snapshot == Decimal("0.08")

    @pytest.mark.asyncio
    async def test_snapshot_cannot_be_updated(self, session, world):
        """Test any update to a stored snapshot is rejected."""
        invoice = await draft_for(session, world.order)
        result = await TradeMarginSnapshotService(session).create_or_get_snapshot(
            invoice.invoice_id, 100000
        )

        result.snapshot.trade_margin_cents = 1
        with pytest.raises(SnapshotImmutableError):
            await session.flush()
        await session.rollback()


class TestSnapshotDataCompleteness:
    """Test hard failures on missing upstream data."""

    async def _order_with_hours(self, factory, state):
        customer = await factory.customer()
        location = await factory.location(customer, state=state)
        trade = await factory.trade()
        worker = await factory.user("Lee Worker")
        order = await factory.order(customer, location)
        await factory.hours(order, worker, [("REG", LineUnit.HOURS, "40", "30", trade.trade_id)])
        return order

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [None, "  "])
    async def test_missing_job_site_state(self, session, factory, state):
        order = await self._order_with_hours(factory, state)
        await factory.burden_rate(BurdenCategory.WC, "5")
        invoice = await draft_for(session, order)
        invoice_id = invoice.invoice_id

        with pytest.raises(MissingJobSiteStateError):
            await TradeMarginSnapshotService(session).create_or_get_snapshot(invoice_id, 100000)

    @pytest.mark.asyncio
    async def test_missing_wc_rate(self, session, factory):
        order = await self._order_with_hours(factory, "OK")
        await factory.burden_rate(BurdenCategory.FICA, "7.65")
        invoice = await draft_for(session, order)
        invoice_id = invoice.invoice_id

        with pytest.raises(MissingBurdenRateError, match="state=OK"):
            await TradeMarginSnapshotService(session).create_or_get_snapshot(invoice_id, 100000)

        service = TradeMarginSnapshotService(session)
        assert await service.get_snapshot(invoice_id) is None
