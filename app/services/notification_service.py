import logging
from typing import Iterable

from sqlalchemy.orm import Session

from app.config import settings
from app.models.notification import Notification, NotificationType
from app.models.user import User, UserRole
from app.utils.exceptions import NotFoundException
from app.utils.push import send_push

logger = logging.getLogger(__name__)


def _serialize(n: Notification) -> dict:
    return {
        "id":        n.id,
        "type":      n.type.value,
        "title":     n.title,
        "message":   n.message,
        "data":      n.data,
        "isRead":    n.isRead,
        "createdAt": n.createdAt.isoformat() if n.createdAt else None,
    }


def admin_ids(db: Session) -> list[int]:
    rows = db.query(User.id).filter(User.role == UserRole.ADMIN, User.isActive == True).all()
    return [r.id for r in rows]


class NotificationService:

    # ─── Emitter ─────────────────────────────────────────────────────────────
    def emit(
        self, db: Session, user_id: int, type: NotificationType,
        title: str, message: str, data: dict | None = None,
    ) -> Notification:
        """Persist one notification (flush only, caller commits)."""
        n = Notification(userId=user_id, type=type, title=title, message=message, data=data)
        db.add(n)
        db.flush()
        return n

    def push(self, user_id: int, title: str, message: str, data: dict | None = None) -> bool:
        """Send one push message. Failures are logged, never raised."""
        if not settings.PUSH_NOTIFICATIONS_ENABLED:
            return False
        try:
            return send_push(user_id, title, message, data)
        except Exception:
            logger.exception(f"Push delivery failed for user #{user_id}")
            return False

    def try_notify(
        self, db: Session, recipients: Iterable[int], type: NotificationType,
        title: str, message: str, data: dict | None = None, push: bool = True,
    ) -> list[Notification]:
        """
        Best-effort fan-out. Must only be called after the triggering
        transaction has been committed: on any failure the pending
        notification rows are rolled back, the error is logged and an
        empty list is returned. Push dispatch failures never undo rows.
        With push=False only the rows are stored.
        """
        recipients = list(dict.fromkeys(recipients))
        try:
            created = [self.emit(db, uid, type, title, message, data) for uid in recipients]
            db.commit()
        except Exception:
            logger.exception(f"Failed to store {type.value} notification for users {recipients}")
            db.rollback()
            return []

        if push:
            for n in created:
                self.push(n.userId, title, message, data)
        return created

    # ─── Inbox ───────────────────────────────────────────────────────────────
    def list_notifications(
        self, db: Session, user: User, page: int, limit: int, unread_only: bool,
    ) -> tuple[list[dict], int]:
        q = db.query(Notification).filter(Notification.userId == user.id)
        if unread_only:
            q = q.filter(Notification.isRead == False)
        total = q.count()
        items = q.order_by(Notification.createdAt.desc(), Notification.id.desc())\
                 .offset((page - 1) * limit).limit(limit).all()
        return [_serialize(n) for n in items], total

    def unread_count(self, db: Session, user: User) -> int:
        return db.query(Notification).filter(
            Notification.userId == user.id, Notification.isRead == False,
        ).count()

    def _get_own(self, db: Session, notification_id: int, user: User) -> Notification:
        n = db.query(Notification).filter(
            Notification.id == notification_id, Notification.userId == user.id,
        ).first()
        if not n:
            raise NotFoundException("Notification")
        return n

    def set_read(self, db: Session, notification_id: int, is_read: bool, user: User) -> dict:
        n = self._get_own(db, notification_id, user)
        n.isRead = is_read
        db.commit()
        db.refresh(n)
        return _serialize(n)

    def mark_all_read(self, db: Session, user: User) -> int:
        count = db.query(Notification).filter(
            Notification.userId == user.id, Notification.isRead == False,
        ).update({Notification.isRead: True}, synchronize_session=False)
        db.commit()
        return count

    def delete_notification(self, db: Session, notification_id: int, user: User) -> None:
        n = self._get_own(db, notification_id, user)
        db.delete(n)
        db.commit()

    def announce(self, db: Session, title: str, message: str, user_ids: list[int] | None) -> int:
        q = db.query(User.id).filter(User.isActive == True)
        if user_ids is not None:
            q = q.filter(User.id.in_(user_ids))
        recipients = [r.id for r in q.all()]
        created = self.try_notify(db, recipients, NotificationType.SYSTEM_ANNOUNCEMENT,
                                  title, message, {"isSystemAnnouncement": True})
        return len(created)


notification_service = NotificationService()
