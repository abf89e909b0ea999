"""Commission arithmetic: payout tiers, payment allocation and amounts."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from settlement_engine.calculators.money import round_cents
from settlement_engine.calculators.types import AllocationResult

DEFAULT_COMMISSION_RATE = Decimal("0.10")
DEFAULT_BANK_LAG_DAYS = 1
DEFAULT_POSTING_GRACE_DAYS = 1

# Remaining balances strictly below this close the invoice for allocation.
# Exactly $100.00 left is not closed out: $900 paid on $1,000 allocates 0.9.
COMMISSION_CLOSE_TOLERANCE_CENTS = 10_000

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class PayoutTier:
    """Days-to-paid range; ``max_days=None`` is open-ended."""

    min_days: int
    max_days: int | None
    multiplier: Decimal

    def matches(self, days: int) -> bool:
        return days >= self.min_days and (self.max_days is None or days <= self.max_days)


FALLBACK_TIERS: tuple[PayoutTier, ...] = (
    PayoutTier(0, 45, Decimal("1.0")),
    PayoutTier(46, 59, Decimal("0.75")),
    PayoutTier(60, 89, Decimal("0.5")),
    PayoutTier(90, None, Decimal("0.0")),
)

# Export labels keyed by payout multiplier
COMMISSION_RULE_LABELS: dict[Decimal, str] = {
    Decimal("1"): "tier-0-40",
    Decimal("0.75"): "tier-41-59",
    Decimal("0.5"): "tier-60-89",
    Decimal("0"): "tier-90+",
}


def days_to_paid(earned_at: datetime, base_at: datetime | None) -> int:
    """Whole days from the invoice base date to payment receipt, never negative."""
    if base_at is None:
        return 0
    return max(0, (earned_at - base_at) // ONE_DAY)


def resolve_multiplier(days: int, tiers: Sequence[PayoutTier] | None = None) -> Decimal:
    """Payout multiplier for ``days``.

    The first matching plan tier wins; without one the fallback ladder applies.
    """
    for tier in tiers or ():
        if tier.matches(days):
            return tier.multiplier
    for tier in FALLBACK_TIERS:
        if tier.matches(days):
            return tier.multiplier
    return Decimal("0")


def allocate_payment(
    invoice_total_cents: int,
    paid_to_date_cents: int,
    payment_cents: int,
) -> AllocationResult:
    """Incremental share of the invoice covered by one payment.

    ``paid_to_date_cents`` includes this payment. Both cumulative figures
    are clamped to the invoice total. A non-negative remainder below the
    close-out tolerance counts as fully paid so that near-exact final
    payments do not strand a residue.
    """
    paid_before = paid_to_date_cents - payment_cents
    effective_before = min(paid_before, invoice_total_cents)
    effective_after = min(paid_to_date_cents, invoice_total_cents)

    remaining = invoice_total_cents - paid_to_date_cents
    closed_out = 0 <= remaining < COMMISSION_CLOSE_TOLERANCE_CENTS
    if closed_out:
        effective_after = invoice_total_cents

    effective_after = max(effective_after, effective_before)

    return AllocationResult(
        invoice_total_cents=invoice_total_cents,
        paid_before_cents=paid_before,
        paid_to_date_cents=paid_to_date_cents,
        effective_paid_before_cents=effective_before,
        effective_paid_after_cents=effective_after,
        closed_out=closed_out,
    )


def compute_commission_cents(
    margin_for_payment_cents: Decimal,
    commission_rate: Decimal,
    split_percent: Decimal,
    multiplier: Decimal,
) -> tuple[int, int]:
    """Raw and payable commission in cents for one assignment."""
    raw = margin_for_payment_cents * commission_rate * split_percent
    return round_cents(raw), round_cents(raw * multiplier)


def is_late_posted(
    earned_at: datetime,
    posted_at: datetime,
    bank_lag_days: int,
    posting_grace_days: int,
) -> bool:
    """Whether posting happened after the bank lag plus grace window."""
    return posted_at > earned_at + timedelta(days=bank_lag_days + posting_grace_days)


def commission_rule(multiplier: Decimal, late_posted: bool = False) -> str:
    """Export label for a payout multiplier."""
    label = COMMISSION_RULE_LABELS.get(Decimal(multiplier).normalize(), "default")
    if late_posted:
        label += "/late-posted"
    return label
