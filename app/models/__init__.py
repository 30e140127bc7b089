"""
Import all models here so that:
1. Alembic can auto-detect them when generating migrations
2. Relationships between models resolve correctly

Order matters: import parent tables before child tables.
"""

from app.models.user import User
from app.models.room import Room
from app.models.reservation import Reservation
from app.models.approval_log import ApprovalLog
from app.models.notification import Notification
from app.models.audit_log import AuditLog
from app.models.incident import Incident, IncidentStatusHistory

__all__ = [
    "User",
    "Room",
    "Reservation",
    "ApprovalLog",
    "Notification",
    "AuditLog",
    "Incident",
    "IncidentStatusHistory",
]
