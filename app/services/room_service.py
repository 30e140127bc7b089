import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.models.reservation import Reservation, BLOCKING_STATUSES
from app.models.room import Room, RoomStatus
from app.schemas.room import RoomCreateRequest, RoomUpdateRequest
from app.services.conflict_service import blocking_reservations, describe_reservation
from app.utils import clock
from app.utils.audit import log_action
from app.utils.clock import as_utc
from app.utils.exceptions import (
    NotFoundException, DuplicateEntryException, InvalidDateRangeException, RoomInUseException,
)
from app.utils.intervals import derive_room_status

logger = logging.getLogger(__name__)


def _serialize(r: Room) -> dict:
    return {
        "id":          r.id,
        "name":        r.name,
        "description": r.description,
        "capacity":    r.capacity,
        "status":      r.status.value,
        "createdAt":   r.createdAt.isoformat() if r.createdAt else None,
        "updatedAt":   r.updatedAt.isoformat() if r.updatedAt else None,
    }


def lock_room(db: Session, room_id: int) -> Room:
    """
    Load a room with a row lock (SELECT ... FOR UPDATE) held until the
    caller commits or rolls back. Serializes every check-then-write span
    on the same room.
    """
    room = db.query(Room).filter(Room.id == room_id).with_for_update().first()
    if not room:
        raise NotFoundException("Room")
    return room


def current_room_status(db: Session, room: Room, now: datetime | None = None) -> RoomStatus:
    """Derive the room status from the reservations covering `now` without writing it."""
    now = as_utc(now or clock.utcnow())
    covering = db.query(Reservation).filter(
        Reservation.roomId == room.id,
        Reservation.status.in_(BLOCKING_STATUSES),
        Reservation.startTime <= now,
        Reservation.endTime   > now,
    ).all()
    return derive_room_status(covering, now)


def set_room_status(room: Room, new_status: RoomStatus) -> RoomStatus:
    if room.status != new_status:
        logger.info(f"Room #{room.id} status {room.status.value} -> {new_status.value}")
        room.status = new_status
    return new_status


def refresh_room_status(db: Session, room: Room, now: datetime | None = None) -> RoomStatus:
    """
    Recompute the cached room status from the reservation set.
    Always derived, never incremented in place.
    """
    return set_room_status(room, current_room_status(db, room, now))


class RoomService:

    def list_rooms(
        self, db: Session, page: int, limit: int,
        search: str | None, status: str | None, min_capacity: int | None,
    ) -> tuple[list[dict], int]:
        q = db.query(Room)

        if search:
            kw = f"%{search}%"
            q = q.filter(Room.name.ilike(kw) | Room.description.ilike(kw))
        if status:
            q = q.filter(Room.status == status)
        if min_capacity:
            q = q.filter(Room.capacity >= min_capacity)

        total = q.count()
        items = q.order_by(Room.name).offset((page - 1) * limit).limit(limit).all()
        return [_serialize(r) for r in items], total

    def get_room(self, db: Session, room_id: int) -> dict:
        r = db.query(Room).filter(Room.id == room_id).first()
        if not r:
            raise NotFoundException("Room")
        return _serialize(r)

    def create_room(self, db: Session, data: RoomCreateRequest, actor_id: int) -> dict:
        if db.query(Room).filter(Room.name == data.name).first():
            raise DuplicateEntryException("A room with this name already exists", field="name")

        room = Room(name=data.name, description=data.description,
                    capacity=data.capacity, status=RoomStatus.FREE)
        db.add(room)
        db.flush()
        log_action(db, actor_id, "CREATE", "Room", room.id, f"Created room '{data.name}'")
        db.commit()
        db.refresh(room)
        return _serialize(room)

    def update_room(self, db: Session, room_id: int, data: RoomUpdateRequest, actor_id: int) -> dict:
        r = db.query(Room).filter(Room.id == room_id).first()
        if not r:
            raise NotFoundException("Room")

        if data.name and data.name != r.name:
            if db.query(Room).filter(Room.name == data.name, Room.id != r.id).first():
                raise DuplicateEntryException("A room with this name already exists", field="name")
            r.name = data.name
        if data.description is not None: r.description = data.description
        if data.capacity is not None:    r.capacity    = data.capacity

        log_action(db, actor_id, "UPDATE", "Room", r.id, f"Updated room '{r.name}'")
        db.commit()
        db.refresh(r)
        return _serialize(r)

    def delete_room(self, db: Session, room_id: int, actor_id: int) -> None:
        r = lock_room(db, room_id)
        blocking = db.query(Reservation).filter(
            Reservation.roomId == r.id,
            Reservation.status.in_(BLOCKING_STATUSES),
        ).count()
        if blocking:
            raise RoomInUseException()

        log_action(db, actor_id, "DELETE", "Room", room_id, f"Deleted room '{r.name}'")
        db.delete(r)
        db.commit()

    def availability(self, db: Session, room_id: int, start: datetime, end: datetime) -> dict:
        r = db.query(Room).filter(Room.id == room_id).first()
        if not r:
            raise NotFoundException("Room")
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            raise InvalidDateRangeException()

        busy = blocking_reservations(db, r.id, start, end).all()
        return {
            "roomId":    r.id,
            "startTime": start.isoformat(),
            "endTime":   end.isoformat(),
            "available": not busy,
            "reservations": [describe_reservation(b) for b in busy],
        }

    def refresh_status(self, db: Session, room_id: int, actor_id: int) -> dict:
        r = lock_room(db, room_id)
        old = r.status.value
        new = refresh_room_status(db, r)
        log_action(db, actor_id, "REFRESH_STATUS", "Room", r.id, f"Status {old} -> {new.value}")
        db.commit()
        db.refresh(r)
        return _serialize(r)


room_service = RoomService()
