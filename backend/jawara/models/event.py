import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from jawara.db.base import Base
from jawara.models.user import UserRole


class EventType(str, Enum):
    lesson = "lesson"
    exam = "exam"
    assignment = "assignment"
    regular_study = "regular_study"
    academic_notes = "academic_notes"
    break_ = "break"
    prayer = "prayer"
    sports = "sports"
    arts = "arts"
    administrative = "administrative"
    personal = "personal"
    broadcast = "broadcast"
    urgent_broadcast = "urgent_broadcast"
    class_announcement = "class_announcement"


class VisibilityScope(str, Enum):
    all = "all"
    role = "role"
    class_ = "class"
    batch = "batch"
    personal = "personal"
    schoolwide = "schoolwide"


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    event_type: Mapped[EventType] = mapped_column(
        SAEnum(EventType, name="event_type", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_by_role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name="user_role"), nullable=False)
    target_class: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    target_user: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    visibility_scope: Mapped[VisibilityScope] = mapped_column(
        SAEnum(
            VisibilityScope,
            name="visibility_scope",
            values_callable=lambda items: [item.value for item in items],
        ),
        nullable=False,
        default=VisibilityScope.class_,
    )
    # "metadata" is reserved on declarative classes.
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    repeat_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
