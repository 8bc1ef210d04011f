"""Event visibility resolution.

Decides which calendar events and broadcasts a viewer may see and builds the
matching SQL predicate for the event store. Everything here is pure: callers
fetch the viewer profile, teacher memberships and candidate events first.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from sqlalchemy import and_, false, or_, true
from sqlalchemy.sql.elements import ColumnElement

from jawara.models.event import Event, VisibilityScope
from jawara.models.user import UserRole

OPEN_SCOPES = (VisibilityScope.all, VisibilityScope.schoolwide)


@dataclass(frozen=True)
class AdminViewer:
    id: str
    batch_id: str | None = None
    role: ClassVar[UserRole] = UserRole.admin


@dataclass(frozen=True)
class TeacherViewer:
    id: str
    class_ids: frozenset[str] = field(default_factory=frozenset)
    batch_id: str | None = None
    role: ClassVar[UserRole] = UserRole.teacher


@dataclass(frozen=True)
class StudentViewer:
    id: str
    class_id: str | None = None
    batch_id: str | None = None
    role: ClassVar[UserRole] = UserRole.student


Viewer = AdminViewer | TeacherViewer | StudentViewer


@dataclass(frozen=True)
class TeacherAssignmentIndex:
    """Union of the ``class_teachers`` and ``teacher_assignments`` memberships."""

    by_teacher: Mapping[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_pairs(cls, *sources: Iterable[tuple[str, str]]) -> "TeacherAssignmentIndex":
        merged: dict[str, set[str]] = {}
        for pairs in sources:
            for teacher_id, class_id in pairs:
                if teacher_id and class_id:
                    merged.setdefault(teacher_id, set()).add(class_id)
        return cls({teacher_id: frozenset(class_ids) for teacher_id, class_ids in merged.items()})

    def classes_for(self, teacher_id: str) -> frozenset[str]:
        return self.by_teacher.get(teacher_id, frozenset())

    def is_assigned(self, teacher_id: str, class_id: str | None) -> bool:
        return class_id is not None and class_id in self.classes_for(teacher_id)


@dataclass(frozen=True)
class LegacyMetadataTarget:
    """Role/batch targeting stored in the free-form ``metadata`` bag.

    Older broadcasts put ``target_role``/``target_batch`` there instead of
    using the structured columns; they are only consulted after those.
    """

    target_role: str | None = None
    target_batch: str | None = None

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any] | None) -> "LegacyMetadataTarget | None":
        if not metadata:
            return None
        role = metadata.get("target_role")
        batch = metadata.get("target_batch")
        if not role and not batch:
            return None
        return cls(
            target_role=str(role) if role else None,
            target_batch=str(batch) if batch else None,
        )

    def matches(self, viewer: Viewer) -> bool:
        if self.target_batch and viewer.batch_id and self.target_batch == viewer.batch_id:
            return True
        return bool(self.target_role) and self.target_role == viewer.role.value


class ScopeHint(str, Enum):
    personal = "personal"
    class_ = "class"
    schoolwide = "schoolwide"


def viewer_from_profile(
    *,
    user_id: str,
    role: UserRole | str,
    class_id: str | None = None,
    batch_id: str | None = None,
    assignments: TeacherAssignmentIndex | None = None,
) -> Viewer:
    role = UserRole(role)
    match role:
        case UserRole.admin:
            return AdminViewer(id=user_id, batch_id=batch_id)
        case UserRole.teacher:
            index = assignments or TeacherAssignmentIndex()
            return TeacherViewer(id=user_id, class_ids=index.classes_for(user_id), batch_id=batch_id)
        case UserRole.student:
            return StudentViewer(id=user_id, class_id=class_id, batch_id=batch_id)
    raise ValueError(f"Unsupported role: {role}")


def _get(event: Any, name: str, default: Any = None) -> Any:
    if isinstance(event, Mapping):
        return event.get(name, default)
    return getattr(event, name, default)


def _event_metadata(event: Any) -> Mapping[str, Any]:
    metadata = _get(event, "event_metadata")
    if metadata is None and isinstance(event, Mapping):
        metadata = event.get("metadata")
    return metadata or {}


def _class_rule(viewer: Viewer, event: Any) -> bool:
    target_class = _get(event, "target_class")
    if target_class is None:
        return False
    match viewer:
        case StudentViewer(class_id=class_id):
            # Students see every event of their class whoever teaches it.
            return class_id is not None and target_class == class_id
        case TeacherViewer(id=teacher_id, class_ids=class_ids):
            if target_class not in class_ids:
                return False
            assigned_teacher = _get(event, "teacher_id")
            return assigned_teacher is None or assigned_teacher == teacher_id
        case AdminViewer():
            return True
    return False


def is_visible(viewer: Viewer, event: Any) -> bool:
    """Return whether ``viewer`` may see ``event``. Never raises for well-formed input."""
    if _get(event, "is_deleted", False):
        return False
    if isinstance(viewer, AdminViewer):
        return True
    if _get(event, "created_by") == viewer.id:
        return True

    scope = _get(event, "visibility_scope")
    if scope in OPEN_SCOPES:
        return True
    if scope == VisibilityScope.class_ and _class_rule(viewer, event):
        return True
    if scope == VisibilityScope.personal and _get(event, "target_user") == viewer.id:
        return True

    legacy = LegacyMetadataTarget.from_metadata(_event_metadata(event))
    return legacy is not None and legacy.matches(viewer)


def matches_scope_hint(viewer: Viewer, event: Any, scope_hint: ScopeHint | str | None) -> bool:
    if scope_hint is None:
        return True
    scope = _get(event, "visibility_scope")
    match ScopeHint(scope_hint):
        case ScopeHint.personal:
            return _get(event, "created_by") == viewer.id or scope == VisibilityScope.personal
        case ScopeHint.class_:
            return scope == VisibilityScope.class_
        case ScopeHint.schoolwide:
            return scope in OPEN_SCOPES
    return False


def filter_visible(
    viewer: Viewer,
    events: Iterable[Any],
    scope_hint: ScopeHint | str | None = None,
) -> list[Any]:
    return [
        event
        for event in events
        if is_visible(viewer, event) and matches_scope_hint(viewer, event, scope_hint)
    ]


def _class_clause(viewer: Viewer) -> ColumnElement[bool]:
    in_class = Event.visibility_scope == VisibilityScope.class_
    match viewer:
        case StudentViewer(class_id=None):
            return false()
        case StudentViewer(class_id=class_id):
            return and_(in_class, Event.target_class == class_id)
        case TeacherViewer(class_ids=class_ids) if not class_ids:
            return false()
        case TeacherViewer(id=teacher_id, class_ids=class_ids):
            return and_(
                in_class,
                Event.target_class.in_(sorted(class_ids)),
                or_(Event.teacher_id.is_(None), Event.teacher_id == teacher_id),
            )
    return false()


def _legacy_clause(viewer: Viewer) -> ColumnElement[bool]:
    clauses = [Event.event_metadata["target_role"].as_string() == viewer.role.value]
    if viewer.batch_id:
        clauses.append(Event.event_metadata["target_batch"].as_string() == viewer.batch_id)
    return or_(*clauses)


def _scope_hint_clause(viewer: Viewer, scope_hint: ScopeHint | str | None) -> ColumnElement[bool]:
    if scope_hint is None:
        return true()
    match ScopeHint(scope_hint):
        case ScopeHint.personal:
            return or_(Event.created_by == viewer.id, Event.visibility_scope == VisibilityScope.personal)
        case ScopeHint.class_:
            return Event.visibility_scope == VisibilityScope.class_
        case ScopeHint.schoolwide:
            return Event.visibility_scope.in_(OPEN_SCOPES)
    return false()


def build_filter_predicate(
    viewer: Viewer,
    scope_hint: ScopeHint | str | None = None,
) -> ColumnElement[bool]:
    """Where-clause selecting exactly the rows ``is_visible`` accepts, narrowed by ``scope_hint``."""
    not_deleted = Event.is_deleted.is_(False)
    hint = _scope_hint_clause(viewer, scope_hint)
    if isinstance(viewer, AdminViewer):
        return and_(not_deleted, hint)

    visible = or_(
        Event.created_by == viewer.id,
        Event.visibility_scope.in_(OPEN_SCOPES),
        _class_clause(viewer),
        and_(Event.visibility_scope == VisibilityScope.personal, Event.target_user == viewer.id),
        _legacy_clause(viewer),
    )
    return and_(not_deleted, visible, hint)
