"""Business calendar for invoice approval cutoffs."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

BUSINESS_TIMEZONE = "America/Chicago"
CUTOFF_HOUR = 8

# Offsets from the Sunday that opens the billing week
DEFAULT_CUTOFF_OFFSET_DAYS = 3  # Wednesday
HOLIDAY_CUTOFF_OFFSET_DAYS = 2  # Tuesday


class BusinessCalendar:
    """Sunday-to-Saturday billing weeks on a local wall calendar.

    Cutoffs are local wall-clock times converted to UTC with the offset
    actually in effect on that date, so weeks that straddle a DST change
    still land on 08:00 local.
    """

    def __init__(self, tz_name: str = BUSINESS_TIMEZONE, cutoff_hour: int = CUTOFF_HOUR):
        self.tz = ZoneInfo(tz_name)
        self.cutoff_hour = cutoff_hour

    def local_date(self, instant: datetime) -> date:
        """Calendar date of ``instant`` in the business timezone.

        Naive datetimes are taken to be UTC.
        """
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz).date()

    def week_start(self, instant: datetime) -> date:
        """Sunday opening the local week that contains ``instant``."""
        local = self.local_date(instant)
        days_since_sunday = (local.weekday() + 1) % 7
        return local - timedelta(days=days_since_sunday)

    def get_cutoff_for_invoice_period(
        self,
        period_end: datetime,
        holiday_week: bool = False,
    ) -> datetime:
        """Approval cutoff for the week containing ``period_end``, in UTC.

        Wednesday 08:00 local by default, Tuesday 08:00 local in a holiday week.
        """
        offset = HOLIDAY_CUTOFF_OFFSET_DAYS if holiday_week else DEFAULT_CUTOFF_OFFSET_DAYS
        target = self.week_start(period_end) + timedelta(days=offset)
        local_cutoff = datetime.combine(target, time(self.cutoff_hour), tzinfo=self.tz)
        return local_cutoff.astimezone(timezone.utc)


_default_calendar = BusinessCalendar()


def get_cutoff_for_invoice_period(period_end: datetime, holiday_week: bool = False) -> datetime:
    """Cutoff on the default America/Chicago calendar."""
    return _default_calendar.get_cutoff_for_invoice_period(period_end, holiday_week)
