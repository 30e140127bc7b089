from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime

from app.models.incident import IncidentStatus, IncidentPriority, IncidentCategory


class IncidentCreateRequest(BaseModel):
    title:                   str
    description:             str
    roomId:                  int
    priority:                IncidentPriority = IncidentPriority.MEDIUM
    category:                IncidentCategory = IncidentCategory.OTHER
    estimatedResolutionTime: Optional[datetime] = None

    @field_validator("title", "description")
    @classmethod
    def check_not_empty(cls, v):
        if not v.strip(): raise ValueError("Field cannot be empty")
        return v.strip()


class IncidentUpdateRequest(BaseModel):
    """Only fields explicitly sent are considered (exclude_unset)."""
    title:                   Optional[str] = None
    description:             Optional[str] = None
    priority:                Optional[IncidentPriority] = None
    category:                Optional[IncidentCategory] = None
    status:                  Optional[IncidentStatus] = None
    assignedToId:            Optional[int] = None
    estimatedResolutionTime: Optional[datetime] = None
    resolutionNotes:         Optional[str] = None
