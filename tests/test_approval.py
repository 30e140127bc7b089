from sqlalchemy import update

from app.models.approval_log import ApprovalLog
from app.models.reservation import Reservation, ReservationStatus
from app.models.room import Room, RoomStatus

from conftest import book

START, END = "2024-01-16T09:00:00Z", "2024-01-16T10:00:00Z"


def pending(client, headers, room_id, start=START, end=END, **extra):
    resp = book(client, headers, room_id, start, end, **extra)
    assert resp.status_code == 201
    return resp.json()["data"]


def approve(client, headers, rid, approved=True, reason=None):
    return client.post(f"/api/v1/reservations/{rid}/approve", headers=headers,
                       json={"approved": approved, "reason": reason})


def room_status(db_session, room_id):
    db_session.expire_all()
    return db_session.get(Room, room_id).status


# ─── Approve / reject ────────────────────────────────────────────────────────
def test_admin_approves_pending_reservation(client, user_headers, admin_headers, room):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    resp = approve(client, admin_headers, rid)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "APPROVED"
    assert resp.json()["data"]["affectedReservationIds"] == [rid]


def test_approving_twice_fails_and_changes_nothing(client, user_headers, admin_headers, room, db_session):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    assert approve(client, admin_headers, rid).status_code == 200

    db_session.expire_all()
    before = db_session.get(Reservation, rid)
    snapshot = (before.status, before.startTime, before.endTime, before.purpose, before.updatedAt)

    resp = approve(client, admin_headers, rid)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "RESERVATION_NOT_PENDING"

    db_session.expire_all()
    after = db_session.get(Reservation, rid)
    assert (after.status, after.startTime, after.endTime, after.purpose, after.updatedAt) == snapshot
    assert db_session.query(ApprovalLog).filter(ApprovalLog.reservationId == rid).count() == 1


def test_rejecting_a_rejected_reservation_fails(client, user_headers, admin_headers, room):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    assert approve(client, admin_headers, rid, approved=False, reason="Maintenance").status_code == 200
    resp = approve(client, admin_headers, rid, approved=False)
    assert resp.status_code == 400


def mark_behind_session(db_session, rid, new_status):
    """Change a row's status without the session's cached copy noticing, like another worker would."""
    cached = db_session.get(Reservation, rid)
    db_session.execute(update(Reservation).where(Reservation.id == rid).values(status=new_status)
                       .execution_options(synchronize_session=False))
    db_session.commit()
    return cached


def test_approve_reads_status_committed_by_another_writer(client, user_headers, admin_headers,
                                                          room, db_session):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    cached = mark_behind_session(db_session, rid, ReservationStatus.REJECTED)
    assert cached.status == ReservationStatus.PENDING

    resp = approve(client, admin_headers, rid)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "RESERVATION_NOT_PENDING"
    db_session.expire_all()
    assert db_session.get(Reservation, rid).status == ReservationStatus.REJECTED
    assert db_session.query(ApprovalLog).filter(ApprovalLog.reservationId == rid).count() == 0


def test_admin_created_reservation_cannot_be_approved(client, admin_headers, room):
    rid = pending(client, admin_headers, room.id)["reservationIds"][0]
    assert approve(client, admin_headers, rid).status_code == 400


def test_only_admins_can_approve(client, user_headers, room):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    resp = approve(client, user_headers, rid)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


def test_approve_unknown_reservation(client, admin_headers):
    assert approve(client, admin_headers, 12345).status_code == 404


def test_reject_frees_the_room(client, user_headers, admin_headers, room, db_session):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    assert room_status(db_session, room.id) == RoomStatus.RESERVED

    resp = approve(client, admin_headers, rid, approved=False, reason="  Room closed ")
    assert resp.json()["data"]["status"] == "REJECTED"
    assert room_status(db_session, room.id) == RoomStatus.FREE

    log = client.get(f"/api/v1/reservations/{rid}/approval-log", headers=admin_headers).json()["data"]
    assert len(log) == 1
    assert log[0]["action"] == "REJECTED"
    assert log[0]["fromStatus"] == "PENDING"
    assert log[0]["note"] == "Room closed"


def test_approving_current_reservation_marks_room_in_use(client, user_headers, admin_headers,
                                                         room, db_session):
    rid = pending(client, user_headers, room.id, "2024-01-15T11:30:00Z", "2024-01-15T12:30:00Z")["reservationIds"][0]
    assert room_status(db_session, room.id) == RoomStatus.RESERVED
    approve(client, admin_headers, rid)
    assert room_status(db_session, room.id) == RoomStatus.IN_USE


def test_recurring_series_is_approved_together(client, user_headers, admin_headers, room, db_session):
    data = pending(client, user_headers, room.id,
                   recurrence={"pattern": "DAILY", "endDate": "2024-01-19"})
    ids = data["reservationIds"]
    assert len(ids) == 4

    resp = approve(client, admin_headers, ids[2])
    assert resp.status_code == 200
    assert sorted(resp.json()["data"]["affectedReservationIds"]) == sorted(ids)
    assert resp.json()["message"] == "Recurring reservation approved (4 occurrences)"

    db_session.expire_all()
    statuses = {r.status for r in db_session.query(Reservation).all()}
    assert statuses == {ReservationStatus.APPROVED}


# ─── Cancel / delete ─────────────────────────────────────────────────────────
def test_cancelling_current_reservation_frees_room(client, admin_headers, room, db_session):
    rid = pending(client, admin_headers, room.id, "2024-01-15T11:00:00Z", "2024-01-15T13:00:00Z")["reservationIds"][0]
    assert room_status(db_session, room.id) == RoomStatus.IN_USE

    resp = client.patch(f"/api/v1/reservations/{rid}/cancel", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "CANCELLED"
    assert room_status(db_session, room.id) == RoomStatus.FREE


def test_cancelling_future_reservation_keeps_room_in_use(client, admin_headers, room, db_session):
    pending(client, admin_headers, room.id, "2024-01-15T11:00:00Z", "2024-01-15T13:00:00Z")
    later = pending(client, admin_headers, room.id, "2024-01-15T14:00:00Z", "2024-01-15T16:00:00Z")
    client.patch(f"/api/v1/reservations/{later['reservationIds'][0]}/cancel", headers=admin_headers)
    assert room_status(db_session, room.id) == RoomStatus.IN_USE


def test_cancelled_reservation_cannot_be_cancelled_again(client, user_headers, room):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    assert client.patch(f"/api/v1/reservations/{rid}/cancel", headers=user_headers).status_code == 200
    resp = client.patch(f"/api/v1/reservations/{rid}/cancel", headers=user_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"


def test_cancel_reads_status_committed_by_another_writer(client, user_headers, room, db_session):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    cached = mark_behind_session(db_session, rid, ReservationStatus.CANCELLED)
    assert cached.status == ReservationStatus.PENDING

    resp = client.patch(f"/api/v1/reservations/{rid}/cancel", headers=user_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"
    assert db_session.query(ApprovalLog).filter(ApprovalLog.reservationId == rid).count() == 0


def test_other_users_cannot_cancel(client, user_headers, other_headers, room):
    rid = pending(client, user_headers, room.id)["reservationIds"][0]
    assert client.patch(f"/api/v1/reservations/{rid}/cancel", headers=other_headers).status_code == 404


def test_cancel_series(client, user_headers, room, db_session):
    ids = pending(client, user_headers, room.id,
                  recurrence={"pattern": "DAILY", "endDate": "2024-01-18"})["reservationIds"]
    resp = client.patch(f"/api/v1/reservations/{ids[0]}/cancel", headers=user_headers,
                        params={"scope": "series"})
    assert sorted(resp.json()["data"]["affectedReservationIds"]) == sorted(ids)
    db_session.expire_all()
    assert {r.status for r in db_session.query(Reservation).all()} == {ReservationStatus.CANCELLED}


def test_deleting_anchor_promotes_next_occurrence(client, user_headers, room, db_session):
    ids = pending(client, user_headers, room.id,
                  recurrence={"pattern": "DAILY", "endDate": "2024-01-18"})["reservationIds"]
    resp = client.delete(f"/api/v1/reservations/{ids[0]}", headers=user_headers)
    assert resp.status_code == 200

    db_session.expire_all()
    rows = db_session.query(Reservation).order_by(Reservation.startTime).all()
    assert [r.id for r in rows] == ids[1:]
    assert rows[0].parentReservationId is None
    assert all(r.parentReservationId == ids[1] for r in rows[1:])


def test_delete_unknown_reservation(client, user_headers):
    assert client.delete("/api/v1/reservations/999", headers=user_headers).status_code == 404


# ─── Completion sweep ────────────────────────────────────────────────────────
def test_complete_elapsed_persists_completed(client, admin_headers, user_headers, room, db_session):
    past = pending(client, admin_headers, room.id, "2024-01-15T08:00:00Z", "2024-01-15T09:00:00Z")
    future = pending(client, admin_headers, room.id, "2024-01-16T08:00:00Z", "2024-01-16T09:00:00Z")
    assert room_status(db_session, room.id) == RoomStatus.RESERVED

    assert client.post("/api/v1/reservations/complete-elapsed", headers=user_headers).status_code == 403
    resp = client.post("/api/v1/reservations/complete-elapsed", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["completed"] == 1

    db_session.expire_all()
    assert db_session.get(Reservation, past["reservationIds"][0]).status == ReservationStatus.COMPLETED
    assert db_session.get(Reservation, future["reservationIds"][0]).status == ReservationStatus.ACTIVE
    assert room_status(db_session, room.id) == RoomStatus.FREE


def test_elapsed_pending_request_is_not_completed(client, admin_headers, user_headers, room, db_session):
    rid = pending(client, user_headers, room.id, "2024-01-15T08:00:00Z", "2024-01-15T09:00:00Z")["reservationIds"][0]

    resp = client.post("/api/v1/reservations/complete-elapsed", headers=admin_headers)
    assert resp.json()["data"]["completed"] == 0

    db_session.expire_all()
    assert db_session.get(Reservation, rid).status == ReservationStatus.PENDING
    detail = client.get(f"/api/v1/reservations/{rid}", headers=user_headers).json()["data"]
    assert detail["displayStatus"] == "PENDING"


def test_cancelling_one_booking_rederives_status_of_the_room(client, user_headers, other_headers,
                                                             room, db_session):
    # Both bookings are in the future, so the derived status is FREE
    pending(client, user_headers, room.id)
    rid = pending(client, other_headers, room.id, "2024-01-17T09:00:00Z", "2024-01-17T10:00:00Z")["reservationIds"][0]
    assert room_status(db_session, room.id) == RoomStatus.RESERVED

    client.patch(f"/api/v1/reservations/{rid}/cancel", headers=other_headers)
    assert room_status(db_session, room.id) == RoomStatus.FREE
