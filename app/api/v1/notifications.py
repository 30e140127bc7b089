from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_admin_user
from app.models.user import User
from app.schemas.notification import NotificationUpdateRequest, AnnouncementRequest
from app.schemas.common import success_response, paginated_response
from app.services.notification_service import notification_service

router = APIRouter(prefix="/notifications")


@router.get("", summary="List my notifications")
def list_notifications(
    page:       int     = Query(1, ge=1),
    limit:      int     = Query(20, ge=1, le=100),
    unreadOnly: bool    = Query(False),
    db:         Session = Depends(get_db),
    current_user: User  = Depends(get_current_user),
):
    data, total = notification_service.list_notifications(db, current_user, page, limit, unreadOnly)
    return paginated_response("Notifications retrieved successfully", data, total, page, limit)


@router.get("/count", summary="Unread notification count")
def unread_count(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return success_response("Unread count retrieved",
                            {"unread": notification_service.unread_count(db, current_user)})


@router.post("/mark-all-read", summary="Mark all my notifications as read")
def mark_all_read(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    count = notification_service.mark_all_read(db, current_user)
    return success_response(f"{count} notification(s) marked as read", {"updated": count})


@router.post("/announce", summary="Broadcast a system announcement (Admin)")
def announce(
    body: AnnouncementRequest,
    db:   Session = Depends(get_db),
    _:    User    = Depends(get_admin_user),
):
    count = notification_service.announce(db, body.title, body.message, body.userIds)
    return success_response("Announcement sent", {"recipients": count})


@router.patch("/{notification_id}", summary="Mark a notification read or unread")
def update_notification(
    notification_id: int,
    body:            NotificationUpdateRequest,
    db:              Session = Depends(get_db),
    current_user:    User    = Depends(get_current_user),
):
    return success_response("Notification updated",
                            notification_service.set_read(db, notification_id, body.isRead, current_user))


@router.delete("/{notification_id}", summary="Delete a notification")
def delete_notification(
    notification_id: int,
    db:              Session = Depends(get_db),
    current_user:    User    = Depends(get_current_user),
):
    notification_service.delete_notification(db, notification_id, current_user)
    return success_response("Notification deleted", None)
