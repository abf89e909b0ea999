"""Trade margin snapshot creation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from settlement_engine.calculators.burden import BurdenCostCalculator
from settlement_engine.calculators.money import to_cents
from settlement_engine.calculators.rate_resolver import BurdenRateResolver
from settlement_engine.calculators.types import LaborCostSummary
from settlement_engine.database import atomic, insert_ignore
from settlement_engine.errors import InvoiceNotFoundError, MissingJobSiteStateError
from settlement_engine.models import (
    CommissionPlan,
    HoursApprovalStatus,
    HoursEntry,
    HoursEntryLine,
    HoursEntryType,
    Invoice,
    Order,
    TradeMarginSnapshot,
)
from settlement_engine.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotResult:
    """Result of create-or-get.

    ``created`` is False when an existing snapshot (possibly written by a
    concurrent caller) was returned unchanged.
    """

    snapshot: TradeMarginSnapshot
    created: bool


async def get_active_commission_plan(session: AsyncSession) -> CommissionPlan | None:
    """Newest active commission plan, with its tiers loaded."""
    result = await session.execute(
        select(CommissionPlan)
        .where(CommissionPlan.is_active.is_(True))
        .order_by(CommissionPlan.created_at.desc())
        .options(selectinload(CommissionPlan.tiers))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_approved_hours_lines(
    session: AsyncSession, order_id: UUID
) -> list[HoursEntryLine]:
    """Lines of every APPROVED, OFFICIAL hours entry on an order."""
    result = await session.execute(
        select(HoursEntryLine)
        .join(HoursEntry, HoursEntryLine.hours_entry_id == HoursEntry.hours_entry_id)
        .where(
            HoursEntry.order_id == order_id,
            HoursEntry.approval_status == HoursApprovalStatus.APPROVED,
            HoursEntry.type == HoursEntryType.OFFICIAL,
        )
        .order_by(HoursEntry.period_start, HoursEntryLine.sort_order)
    )
    return list(result.scalars().all())


class TradeMarginSnapshotService:
    """Creates the one immutable margin snapshot per invoice.

    The snapshot is created lazily from the first payment. Commission rate,
    bank lag and posting grace are frozen into it, so later settings edits
    never reach an existing snapshot.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rate_resolver = BurdenRateResolver(session)
        self.settings = SettingsService(session)

    async def get_snapshot(self, invoice_id: UUID) -> TradeMarginSnapshot | None:
        result = await self.session.execute(
            select(TradeMarginSnapshot).where(TradeMarginSnapshot.invoice_id == invoice_id)
        )
        return result.scalar_one_or_none()

    async def create_or_get_snapshot(
        self,
        invoice_id: UUID,
        payment_amount_cents: int,
    ) -> SnapshotResult:
        """Return the invoice's snapshot, creating it from this payment if absent.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            MissingJobSiteStateError: If the order's job site has no state
            MissingBurdenRateError: If no WC rate resolves for the state
        """
        async with atomic(self.session):
            existing = await self.get_snapshot(invoice_id)
            if existing is not None:
                return SnapshotResult(snapshot=existing, created=False)

            invoice = await self._load_invoice(invoice_id)
            order = invoice.order
            state_code = ""
            if order is not None and order.location is not None:
                state_code = (order.location.state or "").strip()
            if not state_code:
                raise MissingJobSiteStateError(invoice_id)

            lines = await get_approved_hours_lines(self.session, order.order_id)
            labor = BurdenCostCalculator.summarize_labor(lines)
            rates = await self.rate_resolver.resolve_rates(
                invoice.created_at,
                state_code=state_code,
                location_id=order.location_id,
            )
            burden = BurdenCostCalculator.compute_burden(labor, rates, state_code)

            labor_cents = to_cents(labor.total_labor_cost)
            burden_cents = to_cents(burden.total_burden)
            breakdown = burden.breakdown()
            breakdown["labor"] = self._labor_breakdown(labor)

            stmt = (
                insert_ignore(self.session, TradeMarginSnapshot)
                .values(
                    invoice_id=invoice_id,
                    trade_revenue_paid_cents=payment_amount_cents,
                    trade_labor_cost_cents=labor_cents,
                    trade_burden_cost_cents=burden_cents,
                    trade_margin_cents=payment_amount_cents - labor_cents - burden_cents,
                    commission_rate_snapshot=await self._resolve_commission_rate(),
                    bank_lag_days_snapshot=await self.settings.get_bank_lag_days(),
                    posting_grace_days_snapshot=await self.settings.get_posting_grace_days(),
                    burden_breakdown_json=breakdown,
                )
                .on_conflict_do_nothing(index_elements=["invoice_id"])
            )
            result = await self.session.execute(stmt)

            snapshot = await self.get_snapshot(invoice_id)
            if snapshot is None:
                raise RuntimeError(
                    f"Snapshot insert for invoice {invoice_id} neither created nor found a row"
                )

            created = result.rowcount > 0
            if created:
                logger.info(
                    "Created margin snapshot for invoice %s: margin=%d cents",
                    invoice_id,
                    snapshot.trade_margin_cents,
                )
            else:
                logger.info("Margin snapshot for invoice %s created concurrently", invoice_id)
            return SnapshotResult(snapshot=snapshot, created=created)

    async def _load_invoice(self, invoice_id: UUID) -> Invoice:
        result = await self.session.execute(
            select(Invoice)
            .where(Invoice.invoice_id == invoice_id)
            .options(selectinload(Invoice.order).selectinload(Order.location))
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    async def _resolve_commission_rate(self) -> Decimal:
        plan = await get_active_commission_plan(self.session)
        if plan is not None and plan.default_rate is not None:
            return plan.default_rate
        return await self.settings.get_commission_default_rate()

    @staticmethod
    def _labor_breakdown(labor: LaborCostSummary) -> dict[str, Any]:
        return {
            "totalLaborCost": str(labor.total_labor_cost),
            "missingPricingLines": labor.missing_pricing_lines,
            "byTrade": {
                trade_id: {
                    "total": str(trade.total),
                    "byEarningCode": {
                        code: str(cost) for code, cost in trade.by_earning_code.items()
                    },
                }
                for trade_id, trade in labor.by_trade.items()
            },
        }
