"""
Interval arithmetic shared by the overlap checker and the room status cache.

All intervals are half-open: [start, end). A reservation ending at 11:00
and another starting at 11:00 do not overlap.
"""
from datetime import datetime
from typing import Iterable, NamedTuple

from app.models.reservation import ReservationStatus
from app.models.room import RoomStatus
from app.utils.clock import as_utc


class Occurrence(NamedTuple):
    start: datetime
    end: datetime


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """True if [start1, end1) and [start2, end2) share at least one instant."""
    return as_utc(start1) < as_utc(end2) and as_utc(start2) < as_utc(end1)


def covers(start: datetime, end: datetime, instant: datetime) -> bool:
    return as_utc(start) <= as_utc(instant) < as_utc(end)


def self_overlaps(occurrences: list[Occurrence]) -> list[tuple[int, int]]:
    """Pairs (earlier, later) of indexes within one batch that overlap each other."""
    pairs = []
    for j, later in enumerate(occurrences):
        for i in range(j):
            earlier = occurrences[i]
            if overlaps(earlier.start, earlier.end, later.start, later.end):
                pairs.append((i, j))
    return pairs


def derive_room_status(reservations: Iterable, now: datetime) -> RoomStatus:
    """
    Compute the observable room status from its reservations at `now`.

    IN_USE   an APPROVED or ACTIVE reservation covers now
    RESERVED a PENDING reservation covers now
    FREE     otherwise

    Anything with startTime/endTime/status attributes is accepted so the
    function can run on ORM rows as well as plain objects.
    """
    status = RoomStatus.FREE
    for r in reservations:
        if not covers(r.startTime, r.endTime, now):
            continue
        if r.status in (ReservationStatus.APPROVED, ReservationStatus.ACTIVE):
            return RoomStatus.IN_USE
        if r.status == ReservationStatus.PENDING:
            status = RoomStatus.RESERVED
    return status
