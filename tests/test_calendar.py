from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from casetrack.core import ConfigurationError
from casetrack.sla.domain import CalendarResolver, DayHours
from casetrack.sla.domain.value_objects import default_business_hours

from support import UTC

IST = ZoneInfo("Asia/Kolkata")
HOURS = default_business_hours()


def _ist(*args: int) -> datetime:
    return datetime(*args, tzinfo=IST)


def test_is_operating_uses_half_open_window() -> None:
    # 2026-10-19 is a Monday
    assert CalendarResolver.is_operating(_ist(2026, 10, 19, 9, 0), HOURS, (), IST) is True
    assert CalendarResolver.is_operating(_ist(2026, 10, 19, 16, 59), HOURS, (), IST) is True
    assert CalendarResolver.is_operating(_ist(2026, 10, 19, 17, 0), HOURS, (), IST) is False
    assert CalendarResolver.is_operating(_ist(2026, 10, 19, 8, 59), HOURS, (), IST) is False


def test_is_operating_judges_local_time_of_utc_instant() -> None:
    # 04:00 UTC is 09:30 in Kolkata
    instant = datetime(2026, 10, 19, 4, 0, tzinfo=UTC)

    assert CalendarResolver.is_operating(instant, HOURS, (), "Asia/Kolkata") is True
    assert CalendarResolver.is_operating(instant, HOURS, (), "UTC") is False


def test_weekends_and_holidays_are_not_operating() -> None:
    assert CalendarResolver.is_operating(_ist(2026, 10, 17, 11, 0), HOURS, (), IST) is False
    holidays = {date(2026, 10, 19)}
    assert CalendarResolver.is_operating(_ist(2026, 10, 19, 11, 0), HOURS, holidays, IST) is False


def test_advance_keeps_operating_instant() -> None:
    instant = _ist(2026, 10, 19, 11, 15)

    result = CalendarResolver.advance_to_next_operating_instant(instant, HOURS, (), IST)

    assert result == instant
    assert result.tzinfo == UTC


def test_advance_before_opening_returns_same_day_opening() -> None:
    result = CalendarResolver.advance_to_next_operating_instant(_ist(2026, 10, 19, 7, 0), HOURS, (), IST)

    assert result == _ist(2026, 10, 19, 9, 0)


def test_advance_after_close_on_friday_skips_weekend() -> None:
    result = CalendarResolver.advance_to_next_operating_instant(_ist(2026, 10, 16, 17, 0), HOURS, (), IST)

    assert result == _ist(2026, 10, 19, 9, 0)


def test_advance_skips_holidays() -> None:
    holidays = {date(2026, 10, 19), date(2026, 10, 20)}

    result = CalendarResolver.advance_to_next_operating_instant(_ist(2026, 10, 17, 10, 0), HOURS, holidays, IST)

    assert result == _ist(2026, 10, 21, 9, 0)


def test_advance_without_any_operating_day_raises() -> None:
    closed = {day: None for day in HOURS}

    with pytest.raises(ConfigurationError):
        CalendarResolver.advance_to_next_operating_instant(
            _ist(2026, 10, 19, 10, 0), closed, (), IST, max_lookahead_days=30
        )


def test_naive_datetimes_are_rejected() -> None:
    with pytest.raises(ValueError):
        CalendarResolver.is_operating(datetime(2026, 10, 19, 10, 0), HOURS, (), IST)


def test_day_window_allows_midnight_close() -> None:
    all_day = {day: DayHours(start="00:00", end="24:00") for day in HOURS}

    window = CalendarResolver.day_window(_ist(2026, 10, 17, 13, 0), all_day, (), IST)

    assert window == (_ist(2026, 10, 17, 0, 0), _ist(2026, 10, 18, 0, 0))
    assert CalendarResolver.is_operating(_ist(2026, 10, 17, 23, 59), all_day, (), IST) is True


def test_day_window_is_none_on_closed_day() -> None:
    assert CalendarResolver.day_window(_ist(2026, 10, 18, 13, 0), HOURS, (), IST) is None


def test_operating_hours_between_spans_weekend() -> None:
    hours = CalendarResolver.operating_hours_between(
        _ist(2026, 10, 16, 15, 0), _ist(2026, 10, 19, 10, 0), HOURS, (), IST
    )

    assert hours == pytest.approx(3.0)


def test_operating_hours_between_is_zero_for_empty_interval() -> None:
    start = _ist(2026, 10, 19, 10, 0)

    assert CalendarResolver.operating_hours_between(start, start, HOURS, (), IST) == 0.0
