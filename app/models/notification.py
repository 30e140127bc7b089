import enum
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, TIMESTAMP, Enum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class NotificationType(str, enum.Enum):
    RESERVATION_CREATED     = "RESERVATION_CREATED"
    RESERVATION_APPROVED    = "RESERVATION_APPROVED"
    RESERVATION_REJECTED    = "RESERVATION_REJECTED"
    RESERVATION_CANCELLED   = "RESERVATION_CANCELLED"
    INCIDENT_CREATED        = "INCIDENT_CREATED"
    INCIDENT_ASSIGNED       = "INCIDENT_ASSIGNED"
    INCIDENT_STATUS_CHANGED = "INCIDENT_STATUS_CHANGED"
    SYSTEM_ANNOUNCEMENT     = "SYSTEM_ANNOUNCEMENT"


class Notification(Base):
    __tablename__ = "notifications"

    id        = Column(Integer, primary_key=True, index=True)
    userId    = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type      = Column(Enum(NotificationType), nullable=False)
    title     = Column(String(255), nullable=False)
    message   = Column(Text, nullable=False)
    data      = Column(JSON, nullable=True)
    isRead    = Column(Boolean, default=False, nullable=False, index=True)
    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="notifications")

    def __repr__(self):
        return f"<Notification id={self.id} userId={self.userId} type={self.type}>"
