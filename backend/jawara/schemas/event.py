from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from jawara.models.event import EventType, VisibilityScope
from jawara.models.user import UserRole
from jawara.services.scheduling import as_utc

OPTIONAL_TEXT_FIELDS = ("target_class", "target_user", "teacher_id", "location")


def _clean_title(value: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        raise ValueError("Title cannot be empty")
    return trimmed


def _clean_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    # The calendar form sends "none" for an unassigned teacher.
    if not trimmed or trimmed == "none":
        return None
    return trimmed


class EventBase(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    start_at: datetime
    end_at: datetime
    location: str | None = Field(default=None, max_length=200)
    event_type: EventType
    visibility_scope: VisibilityScope = VisibilityScope.class_
    target_class: str | None = None
    target_user: str | None = None
    teacher_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def normalize_title(cls, value: str) -> str:
        return _clean_title(value)

    @field_validator("start_at", "end_at")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator(*OPTIONAL_TEXT_FIELDS)
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)


class EventCreate(EventBase):
    is_recurring: bool = False
    repeat_until: str | None = None


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    location: str | None = Field(default=None, max_length=200)
    event_type: EventType | None = None
    visibility_scope: VisibilityScope | None = None
    target_class: str | None = None
    target_user: str | None = None
    teacher_id: str | None = None
    metadata: dict[str, Any] | None = None

    # Omitted means unchanged; these columns cannot be cleared.
    @field_validator("title", "start_at", "end_at", "event_type", "visibility_scope", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    @field_validator("title")
    @classmethod
    def normalize_title(cls, value: str) -> str:
        return _clean_title(value)

    @field_validator("start_at", "end_at")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator(*OPTIONAL_TEXT_FIELDS)
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)


class VisibilityUpdate(BaseModel):
    visibility_scope: Literal["personal", "class", "schoolwide"]


class EventOut(BaseModel):
    id: str
    title: str
    description: str | None
    start_at: datetime
    end_at: datetime
    location: str | None
    event_type: EventType
    created_by: str
    created_by_role: UserRole
    target_class: str | None
    target_user: str | None
    teacher_id: str | None
    visibility_scope: VisibilityScope
    metadata: dict[str, Any] = Field(validation_alias="event_metadata")
    is_recurring: bool
    repeat_until: datetime | None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("start_at", "end_at", "repeat_until", "created_at", "updated_at")
    @classmethod
    def attach_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class ConflictCheckRequest(BaseModel):
    start_at: datetime
    end_at: datetime
    exclude_event_id: str | None = None

    @field_validator("start_at", "end_at")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


class ConflictCheckOut(BaseModel):
    conflict: bool
    conflicting_event_id: str | None = None
    conflicting_event_title: str | None = None
