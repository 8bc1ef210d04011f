from __future__ import annotations

from collections.abc import Collection

from sqlalchemy import select
from sqlalchemy.orm import Session

from jawara.models.school_class import ClassTeacher, TeacherAssignment
from jawara.models.user import User
from jawara.services.visibility import TeacherAssignmentIndex, Viewer, viewer_from_profile


def load_teacher_assignment_index(
    db: Session,
    teacher_ids: Collection[str] | None = None,
) -> TeacherAssignmentIndex:
    homeroom_query = select(ClassTeacher.teacher_id, ClassTeacher.class_id)
    subject_query = select(TeacherAssignment.teacher_id, TeacherAssignment.class_id)
    if teacher_ids is not None:
        ids = list(teacher_ids)
        if not ids:
            return TeacherAssignmentIndex()
        homeroom_query = homeroom_query.where(ClassTeacher.teacher_id.in_(ids))
        subject_query = subject_query.where(TeacherAssignment.teacher_id.in_(ids))

    homeroom_rows = [(row.teacher_id, row.class_id) for row in db.execute(homeroom_query)]
    subject_rows = [(row.teacher_id, row.class_id) for row in db.execute(subject_query)]
    return TeacherAssignmentIndex.from_pairs(homeroom_rows, subject_rows)


def viewer_for_user(db: Session, user: User) -> Viewer:
    index = load_teacher_assignment_index(db, [user.id])
    return viewer_from_profile(
        user_id=user.id,
        role=user.role,
        class_id=user.class_id,
        batch_id=user.batch_id,
        assignments=index,
    )
