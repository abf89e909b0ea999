"""Settlement calculations."""

from settlement_engine.calculators.burden import BurdenCostCalculator
from settlement_engine.calculators.cutoff import BusinessCalendar, get_cutoff_for_invoice_period
from settlement_engine.calculators.rate_resolver import BurdenRateResolver
from settlement_engine.calculators.types import AllocationResult, BurdenResult, LaborCostSummary

__all__ = [
    "BurdenCostCalculator",
    "BusinessCalendar",
    "get_cutoff_for_invoice_period",
    "BurdenRateResolver",
    "AllocationResult",
    "BurdenResult",
    "LaborCostSummary",
]
