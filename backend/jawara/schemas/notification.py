from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from jawara.models.event import VisibilityScope
from jawara.models.notification import NotificationStatus, NotificationType
from jawara.models.user import UserRole
from jawara.schemas.event import EventOut


class NotificationOut(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    notification_type: NotificationType
    status: NotificationStatus
    event_id: str | None
    details: dict
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationCreate(BaseModel):
    target_user_id: str = Field(min_length=1, max_length=36)
    title: str = Field(default="Notification", min_length=1, max_length=200)
    message: str = Field(min_length=1)
    notification_type: NotificationType = NotificationType.notification


class NotificationStatusUpdate(BaseModel):
    status: NotificationStatus


class BroadcastStatusUpdate(BaseModel):
    status: Literal["read", "dismissed"]


class BroadcastRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)
    target_class: str | None = None
    target_user: str | None = None
    target_batch: str | None = None
    target_role: UserRole | None = None
    visibility_scope: VisibilityScope | None = None
    notification_type: Literal["notification", "alert"] = "notification"
    is_urgent: bool = Field(default=False, alias="isUrgent")

    model_config = {"populate_by_name": True}

    @field_validator("title", "message")
    @classmethod
    def strip_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Missing required fields: title and message")
        return trimmed


class BroadcastOut(BaseModel):
    success: bool = True
    sent_count: int
    broadcast: EventOut
    notifications: list[NotificationOut]
