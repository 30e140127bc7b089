from datetime import date, datetime, timedelta, timezone

import pytest

from app.models.reservation import RecurringPattern
from app.utils.recurrence import expand, weekday_index

MONDAY, WEDNESDAY = 1, 3


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_weekday_index_is_sunday_based():
    assert weekday_index(date(2024, 1, 7)) == 0     # Sunday
    assert weekday_index(date(2024, 1, 1)) == 1     # Monday
    assert weekday_index(date(2024, 1, 6)) == 6     # Saturday


def test_weekly_expansion_includes_end_date():
    occurrences = expand(
        utc(2024, 1, 1, 9), utc(2024, 1, 1, 10),
        RecurringPattern.WEEKLY, [MONDAY, WEDNESDAY], date(2024, 1, 10),
    )
    assert [o.start for o in occurrences] == [
        utc(2024, 1, 1, 9), utc(2024, 1, 3, 9), utc(2024, 1, 8, 9), utc(2024, 1, 10, 9),
    ]
    assert all(o.end - o.start == utc(2024, 1, 1, 10) - utc(2024, 1, 1, 9) for o in occurrences)


def test_daily_expansion():
    occurrences = expand(utc(2024, 3, 1, 8), utc(2024, 3, 1, 9, 30),
                         RecurringPattern.DAILY, None, date(2024, 3, 4))
    assert len(occurrences) == 4
    assert occurrences[-1].start == utc(2024, 3, 4, 8)
    assert occurrences[-1].end == utc(2024, 3, 4, 9, 30)


def test_monthly_skips_months_without_the_day():
    occurrences = expand(utc(2024, 1, 31, 14), utc(2024, 1, 31, 15),
                         RecurringPattern.MONTHLY, None, date(2024, 5, 31))
    assert [o.start.date() for o in occurrences] == [date(2024, 1, 31), date(2024, 3, 31), date(2024, 5, 31)]


def test_occurrence_starting_on_end_date_may_end_after_it():
    occurrences = expand(utc(2024, 1, 1, 23), utc(2024, 1, 2, 1),
                         RecurringPattern.DAILY, None, date(2024, 1, 2))
    assert occurrences[-1].start == utc(2024, 1, 2, 23)
    assert occurrences[-1].end == utc(2024, 1, 3, 1)


def test_first_occurrence_only_when_pattern_matches():
    # Starts on a Monday but only Fridays are requested
    occurrences = expand(utc(2024, 1, 1, 9), utc(2024, 1, 1, 10),
                         RecurringPattern.WEEKLY, [5], date(2024, 1, 14))
    assert [o.start.date() for o in occurrences] == [date(2024, 1, 5), date(2024, 1, 12)]


def test_expansion_is_deterministic():
    args = (utc(2024, 1, 1, 9), utc(2024, 1, 1, 10), RecurringPattern.WEEKLY, [MONDAY, WEDNESDAY],
            date(2024, 3, 1))
    assert expand(*args) == expand(*args)


def test_end_date_before_start_yields_nothing():
    assert expand(utc(2024, 1, 10, 9), utc(2024, 1, 10, 10),
                  RecurringPattern.DAILY, None, date(2024, 1, 9)) == []


def test_inverted_base_interval_is_rejected():
    with pytest.raises(ValueError):
        expand(utc(2024, 1, 1, 10), utc(2024, 1, 1, 9), RecurringPattern.DAILY, None, date(2024, 1, 5))


def test_weekdays_follow_the_client_offset():
    # 22:00 on Monday in -03:00 is already Tuesday in UTC
    brt = timezone(timedelta(hours=-3))
    occurrences = expand(datetime(2024, 1, 1, 22, tzinfo=brt), datetime(2024, 1, 1, 23, tzinfo=brt),
                         RecurringPattern.WEEKLY, [MONDAY], date(2024, 1, 15))
    assert [o.start for o in occurrences] == [
        utc(2024, 1, 2, 1), utc(2024, 1, 9, 1), utc(2024, 1, 16, 1),
    ]
    assert all(o.start.tzinfo == timezone.utc for o in occurrences)


def test_limit_stops_one_past_the_cap():
    occurrences = expand(utc(2024, 1, 1, 9), utc(2024, 1, 1, 10),
                         RecurringPattern.DAILY, None, date(2030, 1, 1), limit=5)
    assert len(occurrences) == 6


def test_last_representable_day_does_not_overflow():
    occurrences = expand(utc(9999, 12, 30, 9), utc(9999, 12, 30, 10),
                         RecurringPattern.DAILY, None, date.max)
    assert [o.start for o in occurrences] == [utc(9999, 12, 30, 9), utc(9999, 12, 31, 9)]


def test_occurrence_past_the_last_representable_instant_is_rejected():
    base_end = datetime(9999, 12, 31, 23, tzinfo=timezone(timedelta(hours=-3)))
    with pytest.raises(ValueError):
        expand(base_end - timedelta(hours=1), base_end,
               RecurringPattern.DAILY, None, date.max)
