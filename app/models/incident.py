import enum
from sqlalchemy import Column, Integer, String, Text, ForeignKey, TIMESTAMP, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class IncidentStatus(str, enum.Enum):
    REPORTED    = "REPORTED"
    IN_ANALYSIS = "IN_ANALYSIS"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED    = "RESOLVED"
    CANCELLED   = "CANCELLED"


class IncidentPriority(str, enum.Enum):
    LOW      = "LOW"
    MEDIUM   = "MEDIUM"
    HIGH     = "HIGH"
    CRITICAL = "CRITICAL"


class IncidentCategory(str, enum.Enum):
    EQUIPMENT      = "EQUIPMENT"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    CLEANING       = "CLEANING"
    SECURITY       = "SECURITY"
    OTHER          = "OTHER"


class Incident(Base):
    __tablename__ = "incidents"

    id                      = Column(Integer, primary_key=True, index=True)
    title                   = Column(String(200), nullable=False)
    description             = Column(Text, nullable=False)
    priority                = Column(Enum(IncidentPriority), default=IncidentPriority.MEDIUM, nullable=False)
    status                  = Column(Enum(IncidentStatus), default=IncidentStatus.REPORTED, nullable=False, index=True)
    category                = Column(Enum(IncidentCategory), default=IncidentCategory.OTHER, nullable=False)
    reportedById            = Column(Integer, ForeignKey("users.id"), nullable=False)
    assignedToId            = Column(Integer, ForeignKey("users.id"), nullable=True)
    roomId                  = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    estimatedResolutionTime = Column(TIMESTAMP(timezone=True), nullable=True)
    actualResolutionTime    = Column(TIMESTAMP(timezone=True), nullable=True)
    resolutionNotes         = Column(Text, nullable=True)
    createdAt               = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt               = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                                     onupdate=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    reported_by    = relationship("User", foreign_keys=[reportedById])
    assigned_to    = relationship("User", foreign_keys=[assignedToId])
    room           = relationship("Room", back_populates="incidents")
    status_history = relationship("IncidentStatusHistory", back_populates="incident",
                                  cascade="all, delete-orphan",
                                  order_by="IncidentStatusHistory.id")

    def __repr__(self):
        return f"<Incident id={self.id} status={self.status} roomId={self.roomId}>"


class IncidentStatusHistory(Base):
    """Append-only: rows are inserted on status/assignment changes, never updated."""
    __tablename__ = "incident_status_history"

    id          = Column(Integer, primary_key=True, index=True)
    incidentId  = Column(Integer, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True)
    fromStatus  = Column(Enum(IncidentStatus), nullable=True)
    toStatus    = Column(Enum(IncidentStatus), nullable=False)
    notes       = Column(Text, nullable=True)
    changedById = Column(Integer, ForeignKey("users.id"), nullable=False)
    createdAt   = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    incident   = relationship("Incident", back_populates="status_history")
    changed_by = relationship("User")

    def __repr__(self):
        return f"<IncidentStatusHistory id={self.id} {self.fromStatus}->{self.toStatus}>"
