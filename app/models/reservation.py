import enum
from sqlalchemy import Column, Integer, String, Text, Boolean, Date, ForeignKey, TIMESTAMP, Enum, JSON, Index, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class ReservationStatus(str, enum.Enum):
    PENDING   = "PENDING"
    ACTIVE    = "ACTIVE"
    APPROVED  = "APPROVED"
    REJECTED  = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class RecurringPattern(str, enum.Enum):
    DAILY   = "DAILY"
    WEEKLY  = "WEEKLY"
    MONTHLY = "MONTHLY"


# Statuses that occupy the room and therefore block overlapping requests
BLOCKING_STATUSES = (ReservationStatus.ACTIVE, ReservationStatus.APPROVED, ReservationStatus.PENDING)


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_room_interval", "roomId", "startTime", "endTime"),
        CheckConstraint('"startTime" < "endTime"', name="ck_reservations_interval"),
    )

    id        = Column(Integer, primary_key=True, index=True)
    userId    = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    roomId    = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    startTime = Column(TIMESTAMP(timezone=True), nullable=False)
    endTime   = Column(TIMESTAMP(timezone=True), nullable=False)
    purpose   = Column(Text, nullable=True)
    status    = Column(Enum(ReservationStatus), default=ReservationStatus.PENDING, nullable=False, index=True)

    # Recurring bookings only
    isRecurring         = Column(Boolean, default=False, nullable=False)
    recurringPattern    = Column(Enum(RecurringPattern), nullable=True)
    recurringDaysOfWeek = Column(JSON, nullable=True)       # [0..6], 0 = Sunday
    recurringEndDate    = Column(Date, nullable=True)                # inclusive, bounds occurrence start
    parentReservationId = Column(Integer, ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True)
    recurringTemplateId = Column(String(36), nullable=True, index=True)

    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                       onupdate=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    user          = relationship("User", back_populates="reservations")
    room          = relationship("Room", back_populates="reservations")
    parent        = relationship("Reservation", remote_side=[id], foreign_keys=[parentReservationId])
    approval_logs = relationship("ApprovalLog", back_populates="reservation", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Reservation id={self.id} status={self.status} roomId={self.roomId}>"
