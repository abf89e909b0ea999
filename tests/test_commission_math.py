"""Tests for commission arithmetic."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from settlement_engine.calculators.commission import (
    PayoutTier,
    allocate_payment,
    commission_rule,
    compute_commission_cents,
    days_to_paid,
    is_late_posted,
    resolve_multiplier,
)

UTC = timezone.utc


class TestFallbackTiers:
    """Test the default payout ladder at its boundaries."""

    @pytest.mark.parametrize(
        "days, expected",
        [
            (0, Decimal("1.0")),
            (45, Decimal("1.0")),
            (46, Decimal("0.75")),
            (59, Decimal("0.75")),
            (60, Decimal("0.5")),
            (89, Decimal("0.5")),
            (90, Decimal("0.0")),
            (400, Decimal("0.0")),
        ],
    )
    def test_boundaries(self, days, expected):
        assert resolve_multiplier(days) == expected

    def test_plan_tiers_take_precedence(self):
        tiers = [PayoutTier(0, 30, Decimal("1")), PayoutTier(31, None, Decimal("0.25"))]
        assert resolve_multiplier(31, tiers) == Decimal("0.25")
        assert resolve_multiplier(500, tiers) == Decimal("0.25")

    def test_first_matching_plan_tier_wins(self):
        tiers = [PayoutTier(0, 60, Decimal("0.9")), PayoutTier(0, 30, Decimal("1"))]
        assert resolve_multiplier(10, tiers) == Decimal("0.9")

    def test_gap_in_plan_tiers_falls_back(self):
        """Days not covered by any plan tier use the default ladder."""
        tiers = [PayoutTier(0, 10, Decimal("1"))]
        assert resolve_multiplier(50, tiers) == Decimal("0.75")


class TestDaysToPaid:
    def test_whole_days_floor(self):
        base = datetime(2025, 3, 12, 12, 0, tzinfo=UTC)
        assert days_to_paid(base + timedelta(days=3, hours=23), base) == 3

    def test_never_negative(self):
        base = datetime(2025, 3, 12, 12, 0, tzinfo=UTC)
        assert days_to_paid(base - timedelta(days=5), base) == 0

    def test_missing_base(self):
        assert days_to_paid(datetime(2025, 3, 12, tzinfo=UTC), None) == 0


class TestAllocatePayment:
    """Test proportional allocation with the close-out tolerance."""

    def test_first_partial_payment(self):
        """$900 of a $1,000 invoice leaves exactly $100: not closed out."""
        result = allocate_payment(100_000, 90_000, 90_000)
        assert result.closed_out is False
        assert result.proportion == Decimal("0.9")

    def test_final_exact_payment(self):
        """A later $100 payment brings paid-to-date to $1,000."""
        result = allocate_payment(100_000, 100_000, 10_000)
        assert result.effective_paid_before_cents == 90_000
        assert result.proportion == Decimal("0.1")

    def test_small_remainder_closes_out(self):
        """$950 paid leaves $50, which is treated as fully paid."""
        result = allocate_payment(100_000, 95_000, 95_000)
        assert result.closed_out is True
        assert result.effective_paid_after_cents == 100_000
        assert result.proportion == Decimal("1")

    def test_one_cent_under_boundary_closes_out(self):
        result = allocate_payment(100_000, 90_001, 90_001)
        assert result.closed_out is True
        assert result.proportion == Decimal("1")

    def test_overpayment_is_clamped(self):
        result = allocate_payment(100_000, 120_000, 30_000)
        assert result.effective_paid_after_cents == 100_000
        assert result.incremental_cents == 10_000
        assert result.closed_out is False

    def test_payment_after_invoice_already_paid(self):
        result = allocate_payment(100_000, 110_000, 10_000)
        assert result.incremental_cents == 0
        assert result.proportion == Decimal("0")

    def test_zero_total(self):
        result = allocate_payment(0, 5_000, 5_000)
        assert result.proportion == Decimal("0")

    @given(
        total=st.integers(min_value=1, max_value=10_000_000),
        before=st.integers(min_value=0, max_value=20_000_000),
        payment=st.integers(min_value=1, max_value=10_000_000),
    )
    def test_share_is_bounded(self, total, before, payment):
        """Incremental share is never negative and never exceeds the invoice."""
        result = allocate_payment(total, before + payment, payment)
        assert 0 <= result.incremental_cents <= total
        assert Decimal("0") <= result.proportion <= Decimal("1")
        assert result.effective_paid_after_cents <= total

    @given(
        total=st.integers(min_value=1, max_value=10_000_000),
        payment=st.integers(min_value=1, max_value=20_000_000),
    )
    def test_single_payment_reaching_total_takes_everything(self, total, payment):
        result = allocate_payment(total, payment, payment)
        if payment >= total:
            assert result.proportion == Decimal("1")


class TestCommissionAmounts:
    def test_raw_and_payable(self):
        raw, payable = compute_commission_cents(
            Decimal("106449"), Decimal("0.10"), Decimal("1"), Decimal("0.75")
        )
        assert raw == 10645
        assert payable == 7984

    def test_split_percent(self):
        raw, payable = compute_commission_cents(
            Decimal("100000"), Decimal("0.10"), Decimal("0.5"), Decimal("1")
        )
        assert (raw, payable) == (5000, 5000)

    def test_half_cent_rounds_up(self):
        raw, _ = compute_commission_cents(Decimal("25"), Decimal("0.10"), Decimal("1"), Decimal("1"))
        assert raw == 3

    def test_zero_multiplier(self):
        _, payable = compute_commission_cents(
            Decimal("100000"), Decimal("0.10"), Decimal("1"), Decimal("0")
        )
        assert payable == 0


class TestLatePosting:
    def test_within_lag_and_grace(self):
        earned = datetime(2025, 3, 20, 12, 0, tzinfo=UTC)
        assert is_late_posted(earned, earned + timedelta(days=2), 1, 1) is False

    def test_after_lag_and_grace(self):
        earned = datetime(2025, 3, 20, 12, 0, tzinfo=UTC)
        assert is_late_posted(earned, earned + timedelta(days=2, seconds=1), 1, 1) is True


class TestCommissionRule:
    @pytest.mark.parametrize(
        "multiplier, label",
        [
            (Decimal("1.0000"), "tier-0-40"),
            (Decimal("0.7500"), "tier-41-59"),
            (Decimal("0.5"), "tier-60-89"),
            (Decimal("0.0000"), "tier-90+"),
            (Decimal("0.9"), "default"),
        ],
    )
    def test_labels(self, multiplier, label):
        assert commission_rule(multiplier) == label

    def test_late_posted_suffix(self):
        assert commission_rule(Decimal("1"), late_posted=True) == "tier-0-40/late-posted"
