import logging
import uuid
from datetime import datetime

from sqlalchemy.orm import Session

from app.config import settings
from app.models.approval_log import ApprovalLog, ApprovalAction
from app.models.notification import NotificationType
from app.models.reservation import Reservation, ReservationStatus, BLOCKING_STATUSES
from app.models.room import Room, RoomStatus
from app.models.user import User
from app.schemas.reservation import (
    ReservationCreateRequest, ReservationUpdateRequest, ConflictCheckRequest,
    ApprovalRequest, RecurrenceSpec,
)
from app.services.conflict_service import check_occurrences
from app.services.notification_service import notification_service, admin_ids
from app.services.room_service import lock_room, current_room_status, set_room_status, refresh_room_status
from app.utils import clock
from app.utils.audit import log_action
from app.utils.clock import as_utc
from app.utils.exceptions import (
    NotFoundException, ForbiddenException, ValidationException, InvalidDateRangeException,
    RecurrenceTooLongException, ReservationConflictException, ReservationNotPendingException,
    InvalidTransitionException, ReservationClosedException,
)
from app.utils.intervals import Occurrence, covers
from app.utils.recurrence import expand

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.ACTIVE, ReservationStatus.APPROVED)
# Only confirmed reservations complete; an elapsed PENDING request stays PENDING
COMPLETABLE_STATUSES = (ReservationStatus.ACTIVE, ReservationStatus.APPROVED)


def display_status(r: Reservation, now: datetime) -> str:
    """COMPLETED is shown lazily for confirmed reservations whose end has passed."""
    if r.status in COMPLETABLE_STATUSES and as_utc(r.endTime) <= now:
        return ReservationStatus.COMPLETED.value
    return r.status.value


def _serialize(r: Reservation, now: datetime | None = None) -> dict:
    now = now or clock.utcnow()
    return {
        "id":            r.id,
        "status":        r.status.value,
        "displayStatus": display_status(r, now),
        "user": {
            "id":    r.user.id,
            "name":  r.user.name,
            "email": r.user.email,
        },
        "room": {
            "id":     r.room.id,
            "name":   r.room.name,
            "status": r.room.status.value,
        },
        "startTime":           as_utc(r.startTime).isoformat(),
        "endTime":             as_utc(r.endTime).isoformat(),
        "purpose":             r.purpose,
        "isRecurring":         r.isRecurring,
        "recurringPattern":    r.recurringPattern.value if r.recurringPattern else None,
        "recurringDaysOfWeek": r.recurringDaysOfWeek,
        "recurringEndDate":    r.recurringEndDate.isoformat() if r.recurringEndDate else None,
        "parentReservationId": r.parentReservationId,
        "recurringTemplateId": r.recurringTemplateId,
        "createdAt":           r.createdAt.isoformat() if r.createdAt else None,
        "updatedAt":           r.updatedAt.isoformat() if r.updatedAt else None,
    }


def _occurrences_for(start: datetime, end: datetime, recurrence: RecurrenceSpec | None) -> list[Occurrence]:
    """Validate the request interval and turn it into the list of occurrences to book."""
    try:
        utc_start, utc_end = as_utc(start), as_utc(end)
    except OverflowError:
        raise ValidationException("Reservation time is out of the supported date range", field="startTime")
    if utc_end <= utc_start:
        raise InvalidDateRangeException()
    if recurrence is None:
        return [Occurrence(utc_start, utc_end)]

    # Recurrence dates are calendar dates in the offset the client sent
    local_start = start if start.tzinfo else utc_start
    if recurrence.endDate < local_start.date():
        raise ValidationException("Recurrence end date must not be before the start date",
                                  field="recurrence.endDate")
    limit = settings.MAX_RECURRING_OCCURRENCES
    try:
        occurrences = expand(local_start, end, recurrence.pattern,
                             recurrence.daysOfWeek, recurrence.endDate, limit=limit)
    except ValueError as e:
        raise ValidationException(str(e), field="recurrence.endDate")
    if not occurrences:
        raise ValidationException("Recurrence does not produce any occurrence", field="recurrence")
    if len(occurrences) > limit:
        raise RecurrenceTooLongException(limit)
    return occurrences


def _booked_room_status(derived: RoomStatus, recurring: bool) -> RoomStatus:
    """
    Room status after a booking or approval lands.
    Single bookings mark the room RESERVED unless it is in use right now;
    recurring sets only reflect whether now falls inside an occurrence.
    """
    if recurring or derived == RoomStatus.IN_USE:
        return derived
    return RoomStatus.RESERVED


class ReservationService:

    def _get(self, db: Session, reservation_id: int) -> Reservation:
        r = db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not r:
            raise NotFoundException("Reservation")
        return r

    def _get_visible(self, db: Session, reservation_id: int, current_user: User) -> Reservation:
        """Owners see their own reservations, admins see all. Others get 404, not 403."""
        r = self._get(db, reservation_id)
        if not current_user.is_admin and r.userId != current_user.id:
            raise NotFoundException("Reservation")
        return r

    def _lock(self, db: Session, r: Reservation) -> tuple[Reservation, Room]:
        """
        Take the room lock, then reload the reservation so status checks read
        what concurrent writers committed while this request waited.
        """
        room = lock_room(db, r.roomId)
        fresh = db.query(Reservation).filter(Reservation.id == r.id).populate_existing().first()
        if not fresh:
            raise NotFoundException("Reservation")
        return fresh, room

    # ─── Queries ─────────────────────────────────────────────────────────────
    def list_reservations(
        self, db: Session, current_user: User,
        page: int, limit: int,
        room_id: int | None, user_id: int | None, status: str | None,
        template_id: str | None, start_date: datetime | None, end_date: datetime | None,
    ) -> tuple[list[dict], int]:
        q = db.query(Reservation)

        if not current_user.is_admin:
            q = q.filter(Reservation.userId == current_user.id)
        elif user_id:
            q = q.filter(Reservation.userId == user_id)

        if room_id:     q = q.filter(Reservation.roomId == room_id)
        if status:      q = q.filter(Reservation.status == status)
        if template_id: q = q.filter(Reservation.recurringTemplateId == template_id)
        if start_date:  q = q.filter(Reservation.endTime   > as_utc(start_date))
        if end_date:    q = q.filter(Reservation.startTime < as_utc(end_date))

        total = q.count()
        items = q.order_by(Reservation.startTime.desc(), Reservation.id.desc())\
                 .offset((page - 1) * limit).limit(limit).all()
        now = clock.utcnow()
        return [_serialize(r, now) for r in items], total

    def user_stats(self, db: Session, current_user: User, user_id: int | None = None) -> dict:
        """Per-user reservation counts. Admins may ask about anyone."""
        if user_id is not None and user_id != current_user.id:
            if not current_user.is_admin:
                raise ForbiddenException("You can only view your own reservation statistics")
            if not db.query(User).filter(User.id == user_id).first():
                raise NotFoundException("User")
        else:
            user_id = current_user.id

        rows = db.query(Reservation).filter(Reservation.userId == user_id).all()
        now = clock.utcnow()
        def count_status(s): return sum(1 for r in rows if r.status == s)

        return {
            "userId":    user_id,
            "total":     len(rows),
            "active":    sum(1 for r in rows
                             if r.status in COMPLETABLE_STATUSES and covers(r.startTime, r.endTime, now)),
            "completed": sum(1 for r in rows if display_status(r, now) == ReservationStatus.COMPLETED.value),
            "pending":   count_status(ReservationStatus.PENDING),
            "rejected":  count_status(ReservationStatus.REJECTED),
            "cancelled": count_status(ReservationStatus.CANCELLED),
        }

    def get_reservation(self, db: Session, reservation_id: int, current_user: User) -> dict:
        return _serialize(self._get_visible(db, reservation_id, current_user))

    def check_conflict(self, db: Session, data: ConflictCheckRequest, current_user: User) -> dict:
        if not db.query(Room).filter(Room.id == data.roomId).first():
            raise NotFoundException("Room")
        occurrences = _occurrences_for(data.startTime, data.endTime, data.recurrence)
        conflicts = check_occurrences(db, data.roomId, occurrences, current_user,
                                      exclude_ids=[data.excludeReservationId])
        return {
            "hasConflict":     bool(conflicts),
            "conflictCount":   len(conflicts),
            "occurrenceCount": len(occurrences),
            "conflicts":       conflicts,
        }

    # ─── Booking ─────────────────────────────────────────────────────────────
    def create_reservation(self, db: Session, data: ReservationCreateRequest, current_user: User) -> dict:
        owner = current_user
        if data.userId is not None and data.userId != current_user.id:
            if not current_user.is_admin:
                raise ForbiddenException("Only administrators can book on behalf of another user")
            owner = db.query(User).filter(User.id == data.userId, User.isActive == True).first()
            if not owner:
                raise NotFoundException("User")

        room = lock_room(db, data.roomId)
        occurrences = _occurrences_for(data.startTime, data.endTime, data.recurrence)

        # Every occurrence is checked before anything is written
        conflicts = check_occurrences(db, room.id, occurrences, owner)
        if conflicts:
            logger.info(f"Reservation request by user #{owner.id} on room #{room.id} "
                        f"rejected: {len(conflicts)} conflicting occurrence(s)")
            raise ReservationConflictException(conflicts)

        status      = ReservationStatus.ACTIVE if current_user.is_admin else ReservationStatus.PENDING
        recurrence  = data.recurrence
        template_id = str(uuid.uuid4()) if recurrence else None

        created: list[Reservation] = []
        for occ in occurrences:
            r = Reservation(
                userId=owner.id,
                roomId=room.id,
                startTime=occ.start,
                endTime=occ.end,
                purpose=data.purpose,
                status=status,
                isRecurring=recurrence is not None,
                recurringPattern=recurrence.pattern if recurrence else None,
                recurringDaysOfWeek=recurrence.daysOfWeek if recurrence else None,
                recurringEndDate=recurrence.endDate if recurrence else None,
                recurringTemplateId=template_id,
                parentReservationId=created[0].id if created else None,
            )
            db.add(r)
            if not created:
                db.flush()      # anchor id is needed by its siblings
            created.append(r)
        db.flush()

        now = clock.utcnow()
        derived = current_room_status(db, room, now)
        set_room_status(room, _booked_room_status(derived, recurrence is not None))

        anchor = created[0]
        log_action(db, current_user.id, "CREATE", "Reservation", anchor.id,
                   f"{owner.name} reserved {room.name} ({len(created)} occurrence(s), {status.value})")
        db.commit()
        for r in created:
            db.refresh(r)

        self._notify_created(db, created, owner, room, current_user)

        return {
            "reservationIds":      [r.id for r in created],
            "reservations":        [_serialize(r, now) for r in created],
            "recurringTemplateId": template_id,
            "conflicts":           [],
        }

    def _notify_created(self, db: Session, created: list[Reservation], owner: User,
                        room: Room, actor: User) -> None:
        anchor = created[0]
        when = as_utc(anchor.startTime).strftime("%Y-%m-%d %H:%M UTC")
        count = f" ({len(created)} occurrences)" if len(created) > 1 else ""
        if actor.is_admin:
            title   = "New reservation"
            message = f"{actor.name} booked {room.name} for {owner.name} starting {when}{count}"
        else:
            title   = "New reservation request"
            message = f"{owner.name} requested {room.name} starting {when}{count}"
        notification_service.try_notify(
            db, admin_ids(db), NotificationType.RESERVATION_CREATED, title, message,
            {
                "reservationId":       anchor.id,
                "reservationIds":      [r.id for r in created],
                "roomId":              room.id,
                "userId":              owner.id,
                "recurringTemplateId": anchor.recurringTemplateId,
            },
        )

    def update_reservation(
        self, db: Session, reservation_id: int, data: ReservationUpdateRequest, current_user: User,
    ) -> dict:
        r, room = self._lock(db, self._get_visible(db, reservation_id, current_user))
        if r.status not in BLOCKING_STATUSES:
            raise ReservationClosedException(r.status.value)

        fields = data.model_dump(exclude_unset=True)
        if "startTime" in fields or "endTime" in fields:
            start = as_utc(data.startTime or r.startTime)
            end   = as_utc(data.endTime or r.endTime)
            if end <= start:
                raise InvalidDateRangeException()
            conflicts = check_occurrences(db, room.id, [Occurrence(start, end)], r.user,
                                          exclude_ids=[r.id])
            if conflicts:
                raise ReservationConflictException(conflicts)
            r.startTime, r.endTime = start, end
            db.flush()
            refresh_room_status(db, room)
        if "purpose" in fields:
            r.purpose = (data.purpose or "").strip() or None

        log_action(db, current_user.id, "UPDATE", "Reservation", r.id,
                   f"Reservation #{r.id} updated ({', '.join(sorted(fields)) or 'no changes'})")
        db.commit()
        db.refresh(r)
        return _serialize(r)

    # ─── Approval state machine ──────────────────────────────────────────────
    def approve_reservation(
        self, db: Session, reservation_id: int, data: ApprovalRequest, current_user: User,
    ) -> dict:
        r, room = self._lock(db, self._get(db, reservation_id))
        if r.status != ReservationStatus.PENDING:
            raise ReservationNotPendingException(r.status.value)

        targets = [r]
        if r.recurringTemplateId:
            targets = db.query(Reservation).filter(
                Reservation.recurringTemplateId == r.recurringTemplateId,
                Reservation.status == ReservationStatus.PENDING,
            ).order_by(Reservation.startTime).populate_existing().all() or [r]

        if data.approved:
            # Re-check in case rows were written outside the booking flow
            conflicts = check_occurrences(
                db, room.id, [Occurrence(as_utc(t.startTime), as_utc(t.endTime)) for t in targets],
                r.user, exclude_ids=[t.id for t in targets],
            )
            if conflicts:
                raise ReservationConflictException(conflicts)

        new_status = ReservationStatus.APPROVED if data.approved else ReservationStatus.REJECTED
        action     = ApprovalAction.APPROVED if data.approved else ApprovalAction.REJECTED
        for t in targets:
            t.status = new_status
            db.add(ApprovalLog(reservationId=t.id, actorId=current_user.id, action=action,
                               fromStatus=ReservationStatus.PENDING.value, note=data.reason))
        db.flush()

        derived = current_room_status(db, room)
        if data.approved:
            set_room_status(room, _booked_room_status(derived, r.isRecurring))
        else:
            set_room_status(room, derived)

        log_action(db, current_user.id, "APPROVE" if data.approved else "REJECT", "Reservation", r.id,
                   f"Reservation #{r.id} {new_status.value.lower()} for {r.user.name}"
                   f" ({len(targets)} occurrence(s))" + (f". Reason: {data.reason}" if data.reason else ""))
        db.commit()
        db.refresh(r)

        self._notify_decision(db, targets, data, room)

        result = _serialize(r)
        result["affectedReservationIds"] = [t.id for t in targets]
        return result

    def _notify_decision(self, db: Session, targets: list[Reservation], data: ApprovalRequest,
                         room: Room) -> None:
        recurring = len(targets) > 1 or targets[0].isRecurring
        if data.approved:
            type  = NotificationType.RESERVATION_APPROVED
            title = "Recurring reservation approved" if recurring else "Reservation approved"
            message = f"Your reservation for {room.name} was approved."
        else:
            type  = NotificationType.RESERVATION_REJECTED
            title = "Recurring reservation rejected" if recurring else "Reservation rejected"
            message = f"Your reservation for {room.name} was rejected" + \
                      (f". Reason: {data.reason}" if data.reason else ".")

        # One stored notification per occurrence, one push for the whole decision
        stored = []
        for t in targets:
            stored += notification_service.try_notify(db, [t.userId], type, title, message, {
                "reservationId":      t.id,
                "roomId":             room.id,
                "roomName":           room.name,
                "startTime":          as_utc(t.startTime).isoformat(),
                "endTime":            as_utc(t.endTime).isoformat(),
                "reason":             data.reason,
                "isRecurring":        t.isRecurring,
                "recurringInstances": len(targets),
            }, push=False)
        if stored:
            first = targets[0]
            notification_service.push(first.userId, title, message, {
                "reservationIds":     [t.id for t in targets],
                "roomId":             room.id,
                "startTime":          as_utc(first.startTime).isoformat(),
                "recurringInstances": len(targets),
            })

    def cancel_reservation(
        self, db: Session, reservation_id: int, current_user: User, scope: str = "single",
    ) -> dict:
        r, room = self._lock(db, self._get_visible(db, reservation_id, current_user))
        if r.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionException(r.status.value, ReservationStatus.CANCELLED.value)

        targets = [r]
        if scope == "series" and r.recurringTemplateId:
            targets = db.query(Reservation).filter(
                Reservation.recurringTemplateId == r.recurringTemplateId,
                Reservation.status.in_(CANCELLABLE_STATUSES),
            ).order_by(Reservation.startTime).populate_existing().all() or [r]

        for t in targets:
            db.add(ApprovalLog(reservationId=t.id, actorId=current_user.id,
                               action=ApprovalAction.CANCELLED, fromStatus=t.status.value))
            t.status = ReservationStatus.CANCELLED
        db.flush()
        refresh_room_status(db, room)

        log_action(db, current_user.id, "CANCEL", "Reservation", r.id,
                   f"Reservation #{r.id} cancelled ({len(targets)} occurrence(s))")
        db.commit()
        db.refresh(r)

        self._notify_cancelled(db, r, room, current_user, len(targets))

        result = _serialize(r)
        result["affectedReservationIds"] = [t.id for t in targets]
        return result

    def _notify_cancelled(self, db: Session, r: Reservation, room: Room, actor: User, count: int) -> None:
        suffix = f" ({count} occurrences)" if count > 1 else ""
        by = "" if actor.id == r.userId else f" by {actor.name}"
        notification_service.try_notify(
            db, [r.userId], NotificationType.RESERVATION_CANCELLED, "Reservation cancelled",
            f"The reservation for {room.name} was cancelled{by}{suffix}.",
            {"reservationId": r.id, "roomId": room.id, "cancelledBy": actor.id},
        )

    def delete_reservation(self, db: Session, reservation_id: int, current_user: User) -> None:
        r, room = self._lock(db, self._get_visible(db, reservation_id, current_user))

        if r.recurringTemplateId and r.parentReservationId is None:
            self._promote_next_anchor(db, r)

        log_action(db, current_user.id, "DELETE", "Reservation", r.id,
                   f"Reservation #{r.id} for {room.name} deleted")
        db.delete(r)
        db.flush()
        refresh_room_status(db, room)
        db.commit()

        # r is detached now but keeps its loaded attributes
        self._notify_cancelled(db, r, room, current_user, 1)

    def _promote_next_anchor(self, db: Session, anchor: Reservation) -> None:
        """Keep exactly one anchor per template when the current anchor is removed."""
        siblings = db.query(Reservation).filter(
            Reservation.recurringTemplateId == anchor.recurringTemplateId,
            Reservation.id != anchor.id,
        ).order_by(Reservation.startTime, Reservation.id).populate_existing().all()
        if not siblings:
            return
        new_anchor = siblings[0]
        new_anchor.parentReservationId = None
        for s in siblings[1:]:
            s.parentReservationId = new_anchor.id
        db.flush()

    def get_approval_log(self, db: Session, reservation_id: int) -> list[dict]:
        self._get(db, reservation_id)
        logs = db.query(ApprovalLog).filter(ApprovalLog.reservationId == reservation_id)\
                 .order_by(ApprovalLog.createdAt.asc(), ApprovalLog.id.asc()).all()
        return [{
            "id":         l.id,
            "actor":      {"id": l.actor.id, "name": l.actor.name},
            "action":     l.action.value,
            "fromStatus": l.fromStatus,
            "note":       l.note,
            "createdAt":  l.createdAt.isoformat() if l.createdAt else None,
        } for l in logs]

    # ─── Scheduler helper (called by cron / background task) ─────────────────
    def complete_elapsed(self, db: Session, actor_id: int | None = None) -> int:
        """Persist COMPLETED for confirmed reservations whose end has passed. Returns count updated."""
        now = clock.utcnow()
        elapsed = db.query(Reservation).filter(
            Reservation.status.in_(COMPLETABLE_STATUSES),
            Reservation.endTime <= now,
        ).all()
        if not elapsed:
            return 0

        room_ids = set()
        for r in elapsed:
            r.status = ReservationStatus.COMPLETED
            room_ids.add(r.roomId)
        db.flush()
        for room in db.query(Room).filter(Room.id.in_(room_ids)).all():
            refresh_room_status(db, room, now)

        log_action(db, actor_id, "SYSTEM_COMPLETE", "Reservation", None,
                   f"{len(elapsed)} elapsed reservation(s) marked COMPLETED")
        db.commit()
        return len(elapsed)


reservation_service = ReservationService()
