"""Type definitions for settlement calculations."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID


class PricedLine(Protocol):
    """Shape of an approved hours line as read by the calculators."""

    earning_code: str
    unit: str
    quantity: Decimal
    rate: Decimal | None
    amount: Decimal | None
    trade_id: UUID | None


@dataclass
class TradeLaborCost:
    """Labor cost for one trade, split by earning code."""

    trade_id: str
    total: Decimal = Decimal("0")
    by_earning_code: dict[str, Decimal] = field(default_factory=dict)

    def add(self, earning_code: str, cost: Decimal) -> None:
        self.total += cost
        self.by_earning_code[earning_code] = (
            self.by_earning_code.get(earning_code, Decimal("0")) + cost
        )


@dataclass
class LaborCostSummary:
    """Labor cost of an order's approved hours."""

    total_labor_cost: Decimal = Decimal("0")
    by_trade: dict[str, TradeLaborCost] = field(default_factory=dict)
    missing_pricing_lines: int = 0

    @property
    def by_earning_code(self) -> dict[str, Decimal]:
        """Cost per earning code across all trades."""
        totals: dict[str, Decimal] = {}
        for trade in self.by_trade.values():
            for code, cost in trade.by_earning_code.items():
                totals[code] = totals.get(code, Decimal("0")) + cost
        return totals


@dataclass(frozen=True)
class BurdenResult:
    """Workers' comp and wage-following burden on a labor summary."""

    state_code: str
    wc_rate_percent: Decimal
    base_wages: Decimal
    wc_cost: Decimal
    wage_following_rates: dict[str, Decimal]
    wage_following_costs: dict[str, Decimal]
    wage_following_total: Decimal
    total_burden: Decimal

    def breakdown(self) -> dict[str, Any]:
        """JSON-ready breakdown, as frozen into the margin snapshot."""
        wage_following: dict[str, Any] = {
            code.lower(): {
                "ratePercent": str(self.wage_following_rates[code]),
                "cost": str(self.wage_following_costs[code]),
            }
            for code in self.wage_following_costs
        }
        wage_following["total"] = str(self.wage_following_total)
        return {
            "workersComp": {
                "state": self.state_code,
                "ratePercent": str(self.wc_rate_percent),
                "baseWages": str(self.base_wages),
                "wcCost": str(self.wc_cost),
            },
            "wageFollowing": wage_following,
            "totalBurden": str(self.total_burden),
        }


@dataclass(frozen=True)
class AllocationResult:
    """Share of an invoice's margin attributable to one payment."""

    invoice_total_cents: int
    paid_before_cents: int
    paid_to_date_cents: int
    effective_paid_before_cents: int
    effective_paid_after_cents: int
    closed_out: bool

    @property
    def incremental_cents(self) -> int:
        return self.effective_paid_after_cents - self.effective_paid_before_cents

    @property
    def proportion(self) -> Decimal:
        if self.invoice_total_cents <= 0:
            return Decimal("0")
        return Decimal(self.incremental_cents) / Decimal(self.invoice_total_cents)
