from pydantic import BaseModel, field_validator
from typing import Optional


class NotificationUpdateRequest(BaseModel):
    isRead: bool


class AnnouncementRequest(BaseModel):
    title:   str
    message: str
    userIds: Optional[list[int]] = None     # None = every active user

    @field_validator("title", "message")
    @classmethod
    def check_not_empty(cls, v):
        if not v.strip(): raise ValueError("Field cannot be empty")
        return v.strip()
