"""
Interval overlap checking against persisted reservations.

Only reservations in BLOCKING_STATUSES (ACTIVE, APPROVED, PENDING) for the
same room are considered. Callers validate start < end beforehand.
"""
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from app.models.reservation import Reservation, BLOCKING_STATUSES
from app.models.user import User
from app.utils.clock import as_utc
from app.utils.intervals import Occurrence, overlaps, self_overlaps


def blocking_reservations(db: Session, room_id: int, start: datetime, end: datetime,
                          exclude_ids: Iterable[int] = ()):
    q = db.query(Reservation).filter(
        Reservation.roomId == room_id,
        Reservation.status.in_(BLOCKING_STATUSES),
        Reservation.startTime < end,
        Reservation.endTime   > start,
    )
    exclude_ids = [i for i in exclude_ids if i is not None]
    if exclude_ids:
        q = q.filter(Reservation.id.notin_(exclude_ids))
    return q.order_by(Reservation.startTime)


def find_conflict(
    db: Session, room_id: int, start: datetime, end: datetime,
    exclude_reservation_id: int | None = None,
) -> Reservation | None:
    """First blocking reservation overlapping [start, end), or None."""
    return blocking_reservations(db, room_id, as_utc(start), as_utc(end), [exclude_reservation_id]).first()


def has_conflict(
    db: Session, room_id: int, start: datetime, end: datetime,
    exclude_reservation_id: int | None = None,
) -> bool:
    return find_conflict(db, room_id, start, end, exclude_reservation_id) is not None


def describe_reservation(r: Reservation) -> dict:
    return {
        "id":        r.id,
        "startTime": as_utc(r.startTime).isoformat(),
        "endTime":   as_utc(r.endTime).isoformat(),
        "status":    r.status.value,
        "user":      {"id": r.user.id, "name": r.user.name},
        "inRequest": False,
    }


def check_occurrences(
    db: Session, room_id: int, occurrences: list[Occurrence], requester: User,
    exclude_ids: Iterable[int] = (),
) -> list[dict]:
    """
    Check every occurrence of a request against the room's persisted
    reservations and against earlier occurrences of the same request.

    Returns one descriptor per conflicting occurrence (empty list = all
    clear). Descriptors name the requested interval and the reservation
    it collides with, including its owner.
    """
    if not occurrences:
        return []

    window_start = min(o.start for o in occurrences)
    window_end   = max(o.end for o in occurrences)
    existing = blocking_reservations(db, room_id, window_start, window_end, exclude_ids).all()

    in_batch = {}
    for earlier, later in self_overlaps(occurrences):
        in_batch.setdefault(later, earlier)

    conflicts = []
    for idx, occ in enumerate(occurrences):
        clash = next(
            (r for r in existing if overlaps(occ.start, occ.end, r.startTime, r.endTime)),
            None,
        )
        if clash is not None:
            conflicting = describe_reservation(clash)
        elif idx in in_batch:
            other = occurrences[in_batch[idx]]
            conflicting = {
                "id":        None,
                "startTime": other.start.isoformat(),
                "endTime":   other.end.isoformat(),
                "status":    None,
                "user":      {"id": requester.id, "name": requester.name},
                "inRequest": True,
            }
        else:
            continue
        conflicts.append({
            "startTime":              occ.start.isoformat(),
            "endTime":                occ.end.isoformat(),
            "conflictingReservation": conflicting,
        })
    return conflicts
