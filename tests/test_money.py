"""Tests for fixed-point money helpers."""

from decimal import Decimal

import pytest

from settlement_engine.calculators.money import (
    cents_to_dollars,
    format_fixed,
    round_cents,
    round_to_cents,
    to_cents,
    to_decimal,
)


class TestConversions:
    def test_to_decimal_handles_none_and_float(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize(
        "dollars, cents",
        [("52.00", 5200), ("0.005", 1), ("0.004", 0), ("1425", 142500), (None, 0)],
    )
    def test_to_cents(self, dollars, cents):
        assert to_cents(dollars) == cents

    def test_round_cents_half_up(self):
        assert round_cents(Decimal("10644.5")) == 10645
        assert round_cents(Decimal("10644.49")) == 10644

    def test_round_to_cents(self):
        assert round_to_cents(Decimal("176.5125")) == Decimal("176.51")
        assert round_to_cents(Decimal("0.125")) == Decimal("0.13")

    def test_cents_to_dollars(self):
        assert str(cents_to_dollars(266600)) == "2666.00"
        assert str(cents_to_dollars(5)) == "0.05"


class TestFormatFixed:
    def test_two_places(self):
        assert format_fixed(Decimal("40")) == "40.00"
        assert format_fixed(Decimal("2.345")) == "2.35"

    def test_four_places(self):
        assert format_fixed(Decimal("0.1"), 4) == "0.1000"

    def test_none_is_zero(self):
        assert format_fixed(None) == "0.00"
