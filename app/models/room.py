import enum
from sqlalchemy import Column, Integer, String, Text, Enum, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class RoomStatus(str, enum.Enum):
    FREE     = "FREE"
    IN_USE   = "IN_USE"
    RESERVED = "RESERVED"


class Room(Base):
    __tablename__ = "rooms"

    id          = Column(Integer, primary_key=True, index=True)
    name        = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    capacity    = Column(Integer, nullable=True)
    # Cached view of the reservation set; never consulted for conflict checks
    status      = Column(Enum(RoomStatus), default=RoomStatus.FREE, nullable=False)
    createdAt   = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt   = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                         onupdate=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    reservations = relationship("Reservation", back_populates="room", cascade="all, delete-orphan")
    incidents    = relationship("Incident", back_populates="room", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Room id={self.id} name={self.name} status={self.status}>"
