from __future__ import annotations

from typing import Any

from jawara.core.exceptions import AuthorizationError
from jawara.models.event import EventType
from jawara.services.visibility import AdminViewer, StudentViewer, TeacherViewer, Viewer

TEACHER_CREATABLE_TYPES = frozenset({EventType.assignment, EventType.exam, EventType.personal})


def ensure_teacher_assignment_allowed(actor: Viewer, teacher_id: str | None) -> None:
    """Only admins may put another teacher's id on an event."""
    if isinstance(actor, AdminViewer) or teacher_id is None or teacher_id == actor.id:
        return
    raise AuthorizationError(
        "You can only assign events to yourself",
        details={"teacher_id": teacher_id},
    )


def ensure_can_create(actor: Viewer, event_type: EventType | str, target_class: str | None) -> None:
    event_type = EventType(event_type)
    match actor:
        case AdminViewer():
            return
        case TeacherViewer(class_ids=class_ids):
            if event_type in TEACHER_CREATABLE_TYPES:
                return
            if event_type == EventType.lesson and target_class in class_ids:
                return
        case StudentViewer():
            if event_type == EventType.personal:
                return
    raise AuthorizationError(
        f"{actor.role.value.capitalize()}s cannot create {event_type.value} events"
        + (" for this class" if event_type == EventType.lesson and target_class else ""),
        details={"event_type": event_type.value, "target_class": target_class},
    )


def ensure_can_modify(actor: Viewer, event: Any) -> None:
    if isinstance(actor, AdminViewer) or event.created_by == actor.id:
        return
    raise AuthorizationError(
        "Only the creator of an event or an admin can change it",
        details={"event_id": event.id},
    )
