from pydantic import BaseModel, field_validator, model_validator
from typing import Optional
from datetime import date, datetime

from app.models.reservation import RecurringPattern


class RecurrenceSpec(BaseModel):
    pattern:    RecurringPattern
    daysOfWeek: list[int] = []      # 0 = Sunday … 6 = Saturday, WEEKLY only
    endDate:    date                # inclusive

    @field_validator("daysOfWeek")
    @classmethod
    def check_days(cls, v):
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("daysOfWeek values must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(v))

    @model_validator(mode="after")
    def check_weekly_days(self) -> "RecurrenceSpec":
        if self.pattern == RecurringPattern.WEEKLY and not self.daysOfWeek:
            raise ValueError("WEEKLY recurrence requires at least one day of week")
        return self


class ReservationCreateRequest(BaseModel):
    roomId:     int
    startTime:  datetime
    endTime:    datetime
    purpose:    Optional[str] = None
    userId:     Optional[int] = None        # Admin only: book on behalf of someone else
    recurrence: Optional[RecurrenceSpec] = None

    @field_validator("purpose")
    @classmethod
    def strip_purpose(cls, v):
        if v is None: return v
        return v.strip() or None


class ReservationUpdateRequest(BaseModel):
    startTime: Optional[datetime] = None
    endTime:   Optional[datetime] = None
    purpose:   Optional[str] = None


class ConflictCheckRequest(BaseModel):
    roomId:               int
    startTime:            datetime
    endTime:              datetime
    excludeReservationId: Optional[int] = None
    recurrence:           Optional[RecurrenceSpec] = None


class ApprovalRequest(BaseModel):
    approved: bool
    reason:   Optional[str] = None

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v):
        if v is None: return v
        return v.strip() or None
