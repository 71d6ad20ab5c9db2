"""
Calendar Resolver
=================

Business-hours arithmetic for SLA rules.

All comparisons happen in the rule's local wall-clock time, but every
duration is measured between UTC instants, so a day on which the clocks
change contributes its real elapsed length. Operating windows are half-open
``[start, end)``: an instant exactly at ``end`` is not operating.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Collection, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from casetrack.config import WEEKDAYS
from casetrack.core import ConfigurationError
from casetrack.sla.domain.value_objects import DayHours

BusinessHours = Mapping[str, Optional[DayHours]]

MAX_LOOKAHEAD_DAYS = 366


def _require_aware(instant: datetime) -> None:
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError(f"timezone-aware datetime required, got naive {instant!r}")


def _as_zone(tz: ZoneInfo | str) -> ZoneInfo:
    return tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)


def _local_to_utc(day: date, offset: timedelta, tz: ZoneInfo) -> datetime:
    """Wall-clock ``day + offset`` in ``tz`` as a UTC instant."""
    local_naive = datetime.combine(day, datetime.min.time()) + offset
    return local_naive.replace(tzinfo=tz).astimezone(timezone.utc)


class CalendarResolver:
    """
    Pure functions answering operating-time questions for a rule's calendar.

    Stateless utility class; every method takes the business-hours map, the
    holiday dates and the timezone explicitly.
    """

    @staticmethod
    def hours_for_day(
        day: date,
        business_hours: BusinessHours,
        holidays: Collection[date]
    ) -> Optional[DayHours]:
        """Operating window of a local date, or None for holidays and closed days."""
        if day in holidays:
            return None
        return business_hours.get(WEEKDAYS[day.weekday()])

    @staticmethod
    def is_operating(
        instant: datetime,
        business_hours: BusinessHours,
        holidays: Collection[date],
        tz: ZoneInfo | str
    ) -> bool:
        """
        Check whether an instant falls inside operating hours.

        Args:
            instant: Aware instant to test
            business_hours: Weekday name -> DayHours (None = closed)
            holidays: Local dates on which nothing is operating
            tz: IANA timezone of the calendar

        Returns:
            True iff the local time of day is within ``[start, end)`` of an
            operating, non-holiday day
        """
        _require_aware(instant)
        local = instant.astimezone(_as_zone(tz))
        hours = CalendarResolver.hours_for_day(local.date(), business_hours, holidays)
        if hours is None:
            return False
        time_of_day = local - datetime.combine(local.date(), datetime.min.time(), tzinfo=local.tzinfo)
        return hours.start_offset <= time_of_day < hours.end_offset

    @staticmethod
    def advance_to_next_operating_instant(
        instant: datetime,
        business_hours: BusinessHours,
        holidays: Collection[date],
        tz: ZoneInfo | str,
        max_lookahead_days: int = MAX_LOOKAHEAD_DAYS
    ) -> datetime:
        """
        Move an instant forward to the next operating instant.

        Returns the instant unchanged (as UTC) when it is already operating.
        Before today's window on an operating day, returns today's opening
        time; otherwise the opening time of the next operating day.

        Raises:
            ConfigurationError: No operating day within ``max_lookahead_days``
        """
        _require_aware(instant)
        zone = _as_zone(tz)
        if CalendarResolver.is_operating(instant, business_hours, holidays, zone):
            return instant.astimezone(timezone.utc)

        local_day = instant.astimezone(zone).date()
        today = CalendarResolver.hours_for_day(local_day, business_hours, holidays)
        if today is not None:
            opening = _local_to_utc(local_day, today.start_offset, zone)
            if instant < opening:
                return opening

        for offset in range(1, max_lookahead_days + 1):
            day = local_day + timedelta(days=offset)
            hours = CalendarResolver.hours_for_day(day, business_hours, holidays)
            if hours is not None:
                return _local_to_utc(day, hours.start_offset, zone)

        raise ConfigurationError(
            f"No operating day within {max_lookahead_days} days of {instant.isoformat()}",
            {"timezone": zone.key, "instant": instant.isoformat()}
        )

    @staticmethod
    def day_window(
        instant: datetime,
        business_hours: BusinessHours,
        holidays: Collection[date],
        tz: ZoneInfo | str
    ) -> Optional[Tuple[datetime, datetime]]:
        """UTC ``(open, close)`` of the local day containing ``instant``, if it operates."""
        _require_aware(instant)
        zone = _as_zone(tz)
        local_day = instant.astimezone(zone).date()
        hours = CalendarResolver.hours_for_day(local_day, business_hours, holidays)
        if hours is None:
            return None
        return (
            _local_to_utc(local_day, hours.start_offset, zone),
            _local_to_utc(local_day, hours.end_offset, zone),
        )

    @staticmethod
    def operating_hours_between(
        start: datetime,
        end: datetime,
        business_hours: BusinessHours,
        holidays: Collection[date],
        tz: ZoneInfo | str
    ) -> float:
        """
        Total operating hours inside ``[start, end)``.

        Returns 0.0 when ``end <= start``.
        """
        _require_aware(start)
        _require_aware(end)
        if end <= start:
            return 0.0

        start = start.astimezone(timezone.utc)
        end = end.astimezone(timezone.utc)
        zone = _as_zone(tz)
        day = start.astimezone(zone).date() - timedelta(days=1)
        last_day = end.astimezone(zone).date()
        total = timedelta(0)
        while day <= last_day:
            hours = CalendarResolver.hours_for_day(day, business_hours, holidays)
            if hours is not None:
                window_start = _local_to_utc(day, hours.start_offset, zone)
                window_end = _local_to_utc(day, hours.end_offset, zone)
                overlap_start = max(start, window_start)
                overlap_end = min(end, window_end)
                if overlap_end > overlap_start:
                    total += overlap_end - overlap_start
            day += timedelta(days=1)

        return total.total_seconds() / 3600
