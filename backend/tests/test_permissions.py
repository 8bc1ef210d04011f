from types import SimpleNamespace

import pytest

from jawara.core.exceptions import AuthorizationError
from jawara.models.event import EventType
from jawara.services.permissions import (
    ensure_can_create,
    ensure_can_modify,
    ensure_teacher_assignment_allowed,
)
from jawara.services.visibility import AdminViewer, StudentViewer, TeacherViewer

ADMIN = AdminViewer(id="A1")
TEACHER = TeacherViewer(id="T1", class_ids=frozenset({"C1"}))
STUDENT = StudentViewer(id="S1", class_id="C1")


def test_only_admins_assign_other_teachers():
    ensure_teacher_assignment_allowed(ADMIN, "T2")
    ensure_teacher_assignment_allowed(TEACHER, "T1")
    ensure_teacher_assignment_allowed(TEACHER, None)
    with pytest.raises(AuthorizationError) as excinfo:
        ensure_teacher_assignment_allowed(TEACHER, "T2")
    assert excinfo.value.status_code == 403


@pytest.mark.parametrize("event_type", [EventType.assignment, EventType.exam, EventType.personal])
def test_teacher_may_create_coursework_anywhere(event_type):
    ensure_can_create(TEACHER, event_type, "C9")


def test_teacher_lessons_limited_to_assigned_classes():
    ensure_can_create(TEACHER, EventType.lesson, "C1")
    with pytest.raises(AuthorizationError):
        ensure_can_create(TEACHER, EventType.lesson, "C2")
    with pytest.raises(AuthorizationError):
        ensure_can_create(TEACHER, EventType.sports, "C1")


def test_students_create_personal_events_only():
    ensure_can_create(STUDENT, "personal", None)
    with pytest.raises(AuthorizationError) as excinfo:
        ensure_can_create(STUDENT, EventType.exam, "C1")
    assert excinfo.value.details["event_type"] == "exam"


def test_admin_creates_any_type():
    for event_type in EventType:
        ensure_can_create(ADMIN, event_type, None)


def test_only_creator_or_admin_modifies():
    record = SimpleNamespace(id="E1", created_by="T1")
    ensure_can_modify(TEACHER, record)
    ensure_can_modify(ADMIN, record)
    with pytest.raises(AuthorizationError):
        ensure_can_modify(STUDENT, record)
