"""Labor cost and burden cost from approved hours."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal

from settlement_engine.calculators.money import to_decimal
from settlement_engine.calculators.types import (
    BurdenResult,
    LaborCostSummary,
    PricedLine,
    TradeLaborCost,
)
from settlement_engine.errors import MissingBurdenRateError
from settlement_engine.models.finance import BurdenCategory
from settlement_engine.models.hours import LineUnit

logger = logging.getLogger(__name__)

UNKNOWN_EARNING_CODE = "UNKNOWN"

# Divisors normalising premium pay back to straight time for the WC base
STRAIGHT_TIME_DIVISORS: dict[str, Decimal] = {
    "REG": Decimal("1"),
    "HOL": Decimal("1"),
    "OT": Decimal("1.5"),
    "DT": Decimal("2.0"),
}

HUNDRED = Decimal("100")


class BurdenCostCalculator:
    """Computes labor and burden cost for an order's approved hours.

    Only HOURS lines tagged with a trade count as labor. A line costs its
    ``amount`` when present, otherwise ``quantity * rate``; lines with
    neither are counted as missing pricing and contribute nothing.

    Burden:
    - WC applies to base wages (REG + HOL + OT/1.5 + DT/2)
    - FICA, FUTA, SUTA, GL and PEO apply to the full labor cost
    """

    @staticmethod
    def line_cost(line: PricedLine) -> Decimal | None:
        """Cost of a single line, or None if it carries no pricing."""
        if line.amount is not None:
            return to_decimal(line.amount)
        if line.quantity is not None and line.rate is not None:
            return to_decimal(line.quantity) * to_decimal(line.rate)
        return None

    @classmethod
    def summarize_labor(cls, lines: Iterable[PricedLine]) -> LaborCostSummary:
        """Group labor cost by trade and earning code."""
        summary = LaborCostSummary()
        for line in lines:
            if line.unit != LineUnit.HOURS or line.trade_id is None:
                continue
            cost = cls.line_cost(line)
            if cost is None:
                summary.missing_pricing_lines += 1
                continue
            trade_key = str(line.trade_id)
            trade = summary.by_trade.setdefault(trade_key, TradeLaborCost(trade_id=trade_key))
            trade.add(line.earning_code or UNKNOWN_EARNING_CODE, cost)
            summary.total_labor_cost += cost

        if summary.missing_pricing_lines:
            logger.warning(
                "%d labor line(s) have neither amount nor rate and were skipped",
                summary.missing_pricing_lines,
            )
        return summary

    @staticmethod
    def base_wages(by_earning_code: Mapping[str, Decimal]) -> Decimal:
        """Straight-time equivalent wages subject to workers' comp."""
        total = Decimal("0")
        for code, cost in by_earning_code.items():
            divisor = STRAIGHT_TIME_DIVISORS.get(code)
            if divisor is not None:
                total += cost / divisor
        return total

    @classmethod
    def compute_burden(
        cls,
        summary: LaborCostSummary,
        rates: Mapping[str, Decimal],
        state_code: str,
    ) -> BurdenResult:
        """Apply burden rates (percentages) to a labor summary.

        Raises:
            MissingBurdenRateError: If the WC rate is missing or not positive
        """
        wc_rate = rates.get(BurdenCategory.WC)
        if wc_rate is None or wc_rate <= 0:
            raise MissingBurdenRateError(state_code, BurdenCategory.WC)

        base_wages = sum(
            (cls.base_wages(trade.by_earning_code) for trade in summary.by_trade.values()),
            Decimal("0"),
        )
        wc_cost = base_wages * wc_rate / HUNDRED

        wage_following_rates: dict[str, Decimal] = {}
        wage_following_costs: dict[str, Decimal] = {}
        for category in BurdenCategory.WAGE_FOLLOWING:
            rate = to_decimal(rates.get(category))
            wage_following_rates[category] = rate
            wage_following_costs[category] = summary.total_labor_cost * rate / HUNDRED
        wage_following_total = sum(wage_following_costs.values(), Decimal("0"))

        return BurdenResult(
            state_code=state_code,
            wc_rate_percent=wc_rate,
            base_wages=base_wages,
            wc_cost=wc_cost,
            wage_following_rates=wage_following_rates,
            wage_following_costs=wage_following_costs,
            wage_following_total=wage_following_total,
            total_burden=wc_cost + wage_following_total,
        )
