import pytest

from jawara.models.event import VisibilityScope
from jawara.models.user import UserRole
from jawara.services.visibility import (
    AdminViewer,
    LegacyMetadataTarget,
    ScopeHint,
    StudentViewer,
    TeacherAssignmentIndex,
    TeacherViewer,
    filter_visible,
    is_visible,
    matches_scope_hint,
    viewer_from_profile,
)


def event(**overrides):
    record = {
        "id": "E1",
        "title": "Algebra",
        "created_by": "A1",
        "visibility_scope": VisibilityScope.class_,
        "target_class": "C1",
        "target_user": None,
        "teacher_id": None,
        "metadata": {},
        "is_deleted": False,
    }
    record.update(overrides)
    return record


STUDENT_C1 = StudentViewer(id="S1", class_id="C1", batch_id="B1")
STUDENT_C2 = StudentViewer(id="S2", class_id="C2", batch_id="B2")
TEACHER_T1 = TeacherViewer(id="T1", class_ids=frozenset({"C1"}))
TEACHER_T2 = TeacherViewer(id="T2", class_ids=frozenset({"C1"}))
ADMIN = AdminViewer(id="A9")


def test_student_sees_class_event_regardless_of_assigned_teacher():
    assert is_visible(STUDENT_C1, event(teacher_id="T2")) is True


def test_teacher_does_not_see_class_event_assigned_to_colleague():
    assert is_visible(TEACHER_T1, event(teacher_id="T2")) is False
    assert is_visible(TEACHER_T2, event(teacher_id="T2")) is True


def test_teacher_sees_unassigned_class_event_only_for_own_classes():
    assert is_visible(TEACHER_T1, event(teacher_id=None)) is True
    assert is_visible(TEACHER_T1, event(target_class="C2")) is False


def test_student_of_other_class_does_not_see_class_event():
    assert is_visible(STUDENT_C2, event()) is False


def test_deleted_event_hidden_from_everyone_including_creator_and_admin():
    deleted = event(is_deleted=True, created_by="S1", visibility_scope=VisibilityScope.all)
    for viewer in (STUDENT_C1, TEACHER_T1, ADMIN):
        assert is_visible(viewer, deleted) is False


def test_creator_always_sees_own_event():
    private = event(visibility_scope=VisibilityScope.personal, target_user="someone-else", created_by="S2")
    assert is_visible(STUDENT_C2, private) is True
    assert is_visible(STUDENT_C1, private) is False


@pytest.mark.parametrize("scope", [VisibilityScope.all, VisibilityScope.schoolwide])
def test_open_scopes_visible_to_all_roles(scope):
    open_event = event(visibility_scope=scope, target_class=None)
    for viewer in (STUDENT_C1, STUDENT_C2, TEACHER_T1, ADMIN):
        assert is_visible(viewer, open_event) is True


def test_personal_event_visible_to_target_user():
    personal = event(visibility_scope=VisibilityScope.personal, target_class=None, target_user="S1")
    assert is_visible(STUDENT_C1, personal) is True
    assert is_visible(STUDENT_C2, personal) is False
    assert is_visible(TEACHER_T1, personal) is False


def test_admin_sees_everything_not_deleted():
    personal = event(visibility_scope=VisibilityScope.personal, target_class=None, target_user="S1")
    assert is_visible(ADMIN, personal) is True
    assert is_visible(ADMIN, event(teacher_id="T2", target_class="C7")) is True


def test_legacy_batch_and_role_targets():
    batch_event = event(visibility_scope=VisibilityScope.batch, target_class=None, metadata={"target_batch": "B1"})
    assert is_visible(STUDENT_C1, batch_event) is True
    assert is_visible(STUDENT_C2, batch_event) is False

    role_event = event(visibility_scope=VisibilityScope.role, target_class=None, metadata={"target_role": "teacher"})
    assert is_visible(TEACHER_T1, role_event) is True
    assert is_visible(STUDENT_C1, role_event) is False


def test_string_scopes_and_orm_style_objects_are_accepted():
    class Row:
        created_by = "A1"
        visibility_scope = "class"
        target_class = "C1"
        target_user = None
        teacher_id = None
        event_metadata = {}
        is_deleted = False

    assert is_visible(STUDENT_C1, Row()) is True
    assert is_visible(STUDENT_C2, Row()) is False


def test_missing_fields_are_not_visible_rather_than_errors():
    assert is_visible(STUDENT_C1, {"visibility_scope": "class"}) is False
    assert is_visible(TEACHER_T1, {}) is False


def test_assignment_index_unions_both_membership_sources():
    index = TeacherAssignmentIndex.from_pairs([("T1", "C1")], [("T1", "C2"), ("T2", "C1"), ("T3", None)])
    assert index.classes_for("T1") == frozenset({"C1", "C2"})
    assert index.is_assigned("T2", "C1") is True
    assert index.is_assigned("T2", None) is False
    assert index.classes_for("T3") == frozenset()


def test_viewer_from_profile_builds_role_variants():
    index = TeacherAssignmentIndex.from_pairs([("T1", "C1")])
    teacher = viewer_from_profile(user_id="T1", role="teacher", assignments=index)
    assert isinstance(teacher, TeacherViewer)
    assert teacher.class_ids == frozenset({"C1"})

    student = viewer_from_profile(user_id="S1", role=UserRole.student, class_id="C1")
    assert isinstance(student, StudentViewer)
    assert student.role == UserRole.student

    assert isinstance(viewer_from_profile(user_id="A1", role="admin"), AdminViewer)


def test_legacy_target_ignores_empty_metadata():
    assert LegacyMetadataTarget.from_metadata({}) is None
    assert LegacyMetadataTarget.from_metadata({"notification_type": "alert"}) is None
    assert LegacyMetadataTarget.from_metadata({"target_role": "student"}).matches(STUDENT_C1) is True


def test_scope_hints_narrow_visible_events():
    events = [
        event(id="class"),
        event(id="school", visibility_scope=VisibilityScope.schoolwide, target_class=None),
        event(id="mine", visibility_scope=VisibilityScope.personal, target_class=None, target_user="S1"),
        event(id="own", visibility_scope=VisibilityScope.all, created_by="S1"),
    ]
    assert [item["id"] for item in filter_visible(STUDENT_C1, events)] == ["class", "school", "mine", "own"]
    assert [item["id"] for item in filter_visible(STUDENT_C1, events, ScopeHint.class_)] == ["class"]
    assert [item["id"] for item in filter_visible(STUDENT_C1, events, "schoolwide")] == ["school", "own"]
    assert [item["id"] for item in filter_visible(STUDENT_C1, events, "personal")] == ["mine", "own"]
    assert matches_scope_hint(STUDENT_C1, events[0], None) is True
