from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Literal, Optional

from app.database import get_db
from app.dependencies import get_current_user, get_admin_user
from app.models.user import User
from app.schemas.reservation import (
    ReservationCreateRequest, ReservationUpdateRequest, ConflictCheckRequest, ApprovalRequest,
)
from app.schemas.common import success_response, paginated_response
from app.services.reservation_service import reservation_service

router = APIRouter(prefix="/reservations")


@router.get("", summary="List reservations (own, or all for admins)")
def list_reservations(
    page:                int                = Query(1, ge=1),
    limit:               int                = Query(20, ge=1, le=100),
    roomId:              Optional[int]      = Query(None),
    userId:              Optional[int]      = Query(None, description="Admin only"),
    status:              Optional[str]      = Query(None),
    recurringTemplateId: Optional[str]      = Query(None),
    startDate:           Optional[datetime] = Query(None),
    endDate:             Optional[datetime] = Query(None),
    db:                  Session            = Depends(get_db),
    current_user:        User               = Depends(get_current_user),
):
    data, total = reservation_service.list_reservations(
        db, current_user, page, limit,
        roomId, userId, status, recurringTemplateId, startDate, endDate,
    )
    return paginated_response("Reservations retrieved successfully", data, total, page, limit)


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create reservation (single or recurring)")
def create_reservation(
    body: ReservationCreateRequest,
    db:   Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = reservation_service.create_reservation(db, body, current_user)
    count = len(data["reservationIds"])
    message = "Reservation created successfully" if count == 1 else f"{count} reservations created successfully"
    return success_response(message, data)


@router.post("/check-conflict", summary="Check a request for conflicts without booking")
def check_conflict(
    body: ConflictCheckRequest,
    db:   Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_response("Conflict check completed",
                            reservation_service.check_conflict(db, body, current_user))


@router.post("/complete-elapsed", summary="Mark elapsed reservations COMPLETED (Admin)")
def complete_elapsed(
    db:           Session = Depends(get_db),
    current_user: User    = Depends(get_admin_user),
):
    count = reservation_service.complete_elapsed(db, current_user.id)
    return success_response(f"{count} reservation(s) completed", {"completed": count})


@router.get("/stats", summary="Reservation counts for a user (own, or any user for Admin)")
def reservation_stats(
    userId:       Optional[int] = Query(None, description="Admin only"),
    db:           Session       = Depends(get_db),
    current_user: User          = Depends(get_current_user),
):
    return success_response("Reservation statistics retrieved",
                            reservation_service.user_stats(db, current_user, userId))


@router.get("/{reservation_id}", summary="Get reservation detail")
def get_reservation(
    reservation_id: int,
    db:             Session = Depends(get_db),
    current_user:   User    = Depends(get_current_user),
):
    return success_response("Reservation retrieved",
                            reservation_service.get_reservation(db, reservation_id, current_user))


@router.put("/{reservation_id}", summary="Reschedule or edit a reservation")
def update_reservation(
    reservation_id: int,
    body:           ReservationUpdateRequest,
    db:             Session = Depends(get_db),
    current_user:   User    = Depends(get_current_user),
):
    return success_response("Reservation updated",
                            reservation_service.update_reservation(db, reservation_id, body, current_user))


@router.post("/{reservation_id}/approve", summary="Approve or reject a PENDING reservation (Admin)")
def approve_reservation(
    reservation_id: int,
    body:           ApprovalRequest,
    db:             Session = Depends(get_db),
    current_user:   User    = Depends(get_admin_user),
):
    data = reservation_service.approve_reservation(db, reservation_id, body, current_user)
    verb = "approved" if body.approved else "rejected"
    count = len(data["affectedReservationIds"])
    message = f"Reservation {verb}" if count == 1 else f"Recurring reservation {verb} ({count} occurrences)"
    return success_response(message, data)


@router.patch("/{reservation_id}/cancel", summary="Cancel reservation (owner or Admin)")
def cancel_reservation(
    reservation_id: int,
    scope:          Literal["single", "series"] = Query("single"),
    db:             Session = Depends(get_db),
    current_user:   User    = Depends(get_current_user),
):
    return success_response("Reservation cancelled",
                            reservation_service.cancel_reservation(db, reservation_id, current_user, scope))


@router.delete("/{reservation_id}", summary="Delete reservation (owner or Admin)")
def delete_reservation(
    reservation_id: int,
    db:             Session = Depends(get_db),
    current_user:   User    = Depends(get_current_user),
):
    reservation_service.delete_reservation(db, reservation_id, current_user)
    return success_response("Reservation deleted", None)


@router.get("/{reservation_id}/approval-log", summary="Get approval history (Admin)")
def get_approval_log(
    reservation_id: int,
    db:             Session = Depends(get_db),
    _:              User    = Depends(get_admin_user),
):
    return success_response("Approval log retrieved", reservation_service.get_approval_log(db, reservation_id))
