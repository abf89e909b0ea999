"""Tests for the business calendar cutoff."""

from datetime import date, datetime, timezone

import pytest

from settlement_engine.calculators.cutoff import BusinessCalendar, get_cutoff_for_invoice_period

UTC = timezone.utc


class TestWeekStart:
    """Test Sunday week anchoring in America/Chicago."""

    def test_saturday_belongs_to_preceding_sunday(self):
        """Saturday afternoon maps to the Sunday that opened its week."""
        calendar = BusinessCalendar()
        assert calendar.week_start(datetime(2025, 3, 15, 18, 0, tzinfo=UTC)) == date(2025, 3, 9)

    def test_local_date_not_utc_date(self):
        """Sunday 03:00 UTC is still Saturday evening in Chicago."""
        calendar = BusinessCalendar()
        instant = datetime(2025, 3, 16, 3, 0, tzinfo=UTC)
        assert calendar.local_date(instant) == date(2025, 3, 15)
        assert calendar.week_start(instant) == date(2025, 3, 9)

    def test_sunday_starts_new_week(self):
        calendar = BusinessCalendar()
        assert calendar.week_start(datetime(2025, 3, 16, 18, 0, tzinfo=UTC)) == date(2025, 3, 16)

    def test_naive_input_is_utc(self):
        """Naive datetimes are read as UTC."""
        calendar = BusinessCalendar()
        assert calendar.local_date(datetime(2025, 3, 16, 3, 0)) == date(2025, 3, 15)


class TestCutoff:
    """Test Wednesday/Tuesday 08:00 Chicago cutoffs."""

    def test_dst_start_week_uses_cdt_offset(self):
        """Week of 2025-03-09 (DST starts): Wednesday 08:00 CDT is 13:00 UTC."""
        cutoff = get_cutoff_for_invoice_period(datetime(2025, 3, 15, 18, 0, tzinfo=UTC))
        assert cutoff == datetime(2025, 3, 12, 13, 0, tzinfo=UTC)

    def test_week_before_dst_uses_cst_offset(self):
        """Week of 2025-03-02 is still on CST: Wednesday 08:00 is 14:00 UTC."""
        cutoff = get_cutoff_for_invoice_period(datetime(2025, 3, 8, 18, 0, tzinfo=UTC))
        assert cutoff == datetime(2025, 3, 5, 14, 0, tzinfo=UTC)

    def test_dst_end_week(self):
        """Week of 2025-11-02 (DST ends that Sunday): back on CST."""
        cutoff = get_cutoff_for_invoice_period(datetime(2025, 11, 8, 18, 0, tzinfo=UTC))
        assert cutoff == datetime(2025, 11, 5, 14, 0, tzinfo=UTC)

    def test_week_before_dst_end(self):
        """Week of 2025-10-26 is still on CDT."""
        cutoff = get_cutoff_for_invoice_period(datetime(2025, 11, 1, 18, 0, tzinfo=UTC))
        assert cutoff == datetime(2025, 10, 29, 13, 0, tzinfo=UTC)

    def test_holiday_week_is_tuesday(self):
        """Holiday weeks move the cutoff a day earlier."""
        cutoff = get_cutoff_for_invoice_period(
            datetime(2025, 3, 15, 18, 0, tzinfo=UTC), holiday_week=True
        )
        assert cutoff == datetime(2025, 3, 11, 13, 0, tzinfo=UTC)

    def test_year_rollover(self):
        """Week of Sunday 2025-12-28 spans the new year."""
        cutoff = get_cutoff_for_invoice_period(datetime(2026, 1, 3, 18, 0, tzinfo=UTC))
        assert cutoff == datetime(2025, 12, 31, 14, 0, tzinfo=UTC)

        holiday = get_cutoff_for_invoice_period(
            datetime(2026, 1, 3, 18, 0, tzinfo=UTC), holiday_week=True
        )
        assert holiday == datetime(2025, 12, 30, 14, 0, tzinfo=UTC)

    def test_month_rollover(self):
        """Week of Sunday 2025-06-29: Wednesday is 2025-07-02."""
        cutoff = get_cutoff_for_invoice_period(datetime(2025, 7, 1, 12, 0, tzinfo=UTC))
        assert cutoff == datetime(2025, 7, 2, 13, 0, tzinfo=UTC)

    def test_cutoff_is_utc(self):
        cutoff = get_cutoff_for_invoice_period(datetime(2025, 3, 15, 18, 0, tzinfo=UTC))
        assert cutoff.utcoffset().total_seconds() == 0

    @pytest.mark.parametrize(
        "tz_name, expected",
        [
            ("America/New_York", datetime(2025, 3, 12, 12, 0, tzinfo=UTC)),
            ("UTC", datetime(2025, 3, 12, 8, 0, tzinfo=UTC)),
        ],
    )
    def test_other_timezones(self, tz_name, expected):
        calendar = BusinessCalendar(tz_name)
        assert calendar.get_cutoff_for_invoice_period(
            datetime(2025, 3, 14, 18, 0, tzinfo=UTC)
        ) == expected
