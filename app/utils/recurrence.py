"""
Recurrence expansion for recurring reservations.

The cursor walks one calendar day at a time from the base start date up to
and including the recurrence end date. Calendar dates, weekdays and time of
day are taken in the offset the base start was given in; each occurrence is
converted to UTC once built. Weekdays use 0 = Sunday … 6 = Saturday.
"""
from datetime import date, datetime, timedelta, timezone

from app.models.reservation import RecurringPattern
from app.utils.intervals import Occurrence


def weekday_index(d: date) -> int:
    """Sunday-based weekday (0 = Sunday, 6 = Saturday)."""
    return d.isoweekday() % 7


def _matches(pattern: RecurringPattern, cursor: date, anchor: date, days_of_week: set[int]) -> bool:
    if pattern == RecurringPattern.DAILY:
        return True
    if pattern == RecurringPattern.WEEKLY:
        return weekday_index(cursor) in days_of_week
    if pattern == RecurringPattern.MONTHLY:
        # Months without the anchor day (e.g. the 31st) produce nothing
        return cursor.day == anchor.day
    raise ValueError(f"Unknown recurring pattern: {pattern}")


def _local(value: datetime) -> datetime:
    # Naive input is taken to be UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def expand(
    base_start: datetime,
    base_end: datetime,
    pattern: RecurringPattern,
    days_of_week: list[int] | set[int] | None,
    end_date: date,
    limit: int | None = None,
) -> list[Occurrence]:
    """
    Materialize every occurrence of a recurring request, ascending by start.

    `end_date` is inclusive and bounds the occurrence *start*, as a calendar
    date in the base start's offset: an occurrence starting on end_date is
    kept even if it ends after it. The result is a pure function of the
    arguments.

    With `limit`, expansion stops after limit + 1 occurrences so callers can
    reject an oversized series without walking all of it.
    """
    base_start = _local(base_start)
    base_end   = _local(base_end)
    if base_end <= base_start:
        raise ValueError("base_end must be after base_start")

    duration    = base_end - base_start
    time_of_day = base_start.timetz()
    anchor      = base_start.date()
    days        = set(days_of_week or ())

    occurrences = []
    cursor = anchor
    while cursor <= end_date:
        if _matches(pattern, cursor, anchor, days):
            try:
                start = datetime.combine(cursor, time_of_day)
                occurrences.append(Occurrence(start.astimezone(timezone.utc),
                                              (start + duration).astimezone(timezone.utc)))
            except OverflowError:
                raise ValueError(f"Occurrence on {cursor.isoformat()} is out of the supported date range")
            if limit is not None and len(occurrences) > limit:
                break
        if cursor == date.max:
            break
        cursor += timedelta(days=1)
    return occurrences
