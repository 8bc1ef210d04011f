from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jawara.api.deps import get_db, require_roles
from jawara.models.school_class import Batch, ClassTeacher, SchoolClass, TeacherAssignment
from jawara.models.user import User, UserRole
from jawara.schemas.school_class import (
    BatchCreate,
    BatchOut,
    BatchStatusUpdate,
    CapacityUpdate,
    ClassCapacityOut,
    ClassCreate,
    ClassOut,
    EnrollmentRequest,
    TeacherLink,
    TeacherLinkOut,
)
from jawara.schemas.user import ProfileOut
from jawara.services.audit import log_activity

router = APIRouter()

admin_only = require_roles(UserRole.admin)


def _get_class(db: Session, class_id: str) -> SchoolClass:
    school_class = db.get(SchoolClass, class_id)
    if school_class is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return school_class


def _get_teacher(db: Session, teacher_id: str) -> User:
    teacher = db.get(User, teacher_id)
    if teacher is None or teacher.role != UserRole.teacher:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Teacher not found")
    return teacher


def _enrollment_count(db: Session, class_id: str) -> int:
    return db.execute(
        select(func.count(User.id)).where(User.class_id == class_id, User.role == UserRole.student)
    ).scalar_one()


@router.get("/batches", response_model=list[BatchOut])
def list_batches(
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> list[BatchOut]:
    return list(db.execute(select(Batch).order_by(Batch.name)).scalars())


@router.post("/batches", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
def create_batch(
    payload: BatchCreate,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> BatchOut:
    batch = Batch(**payload.model_dump(), is_active=True)
    db.add(batch)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Batch name already exists") from exc
    log_activity(db, actor=current_user, action="batch.create", entity_type="batch", entity_id=batch.id)
    db.commit()
    db.refresh(batch)
    return batch


@router.patch("/batches/{batch_id}", response_model=BatchOut)
def update_batch_status(
    batch_id: str,
    payload: BatchStatusUpdate,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> BatchOut:
    batch = db.get(Batch, batch_id)
    if batch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")

    batch.is_active = payload.is_active
    if payload.start_date is not None:
        batch.start_date = payload.start_date
    if payload.end_date is not None:
        batch.end_date = payload.end_date
    if not payload.is_active:
        db.execute(update(SchoolClass).where(SchoolClass.batch_id == batch.id).values(is_active=False))

    log_activity(
        db,
        actor=current_user,
        action="batch.update",
        entity_type="batch",
        entity_id=batch.id,
        details={"is_active": payload.is_active},
    )
    db.commit()
    db.refresh(batch)
    return batch


@router.get("/classes", response_model=list[ClassOut])
def list_classes(
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> list[ClassOut]:
    return list(db.execute(select(SchoolClass).order_by(SchoolClass.name)).scalars())


@router.post("/classes", response_model=ClassOut, status_code=status.HTTP_201_CREATED)
def create_class(
    payload: ClassCreate,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> ClassOut:
    if payload.batch_id is not None and db.get(Batch, payload.batch_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")
    school_class = SchoolClass(**payload.model_dump(), is_active=True)
    db.add(school_class)
    db.flush()
    log_activity(db, actor=current_user, action="class.create", entity_type="class", entity_id=school_class.id)
    db.commit()
    db.refresh(school_class)
    return school_class


@router.get("/classes/{class_id}/capacity", response_model=ClassCapacityOut)
def get_class_capacity(
    class_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> ClassCapacityOut:
    school_class = _get_class(db, class_id)
    return ClassCapacityOut(
        class_id=school_class.id,
        capacity=school_class.capacity,
        current_enrollment=_enrollment_count(db, school_class.id),
    )


@router.put("/classes/{class_id}/capacity", response_model=ClassCapacityOut)
def update_class_capacity(
    class_id: str,
    payload: CapacityUpdate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> ClassCapacityOut:
    school_class = _get_class(db, class_id)
    enrolled = _enrollment_count(db, school_class.id)
    if payload.capacity < enrolled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Capacity cannot be lower than current enrollment ({enrolled})",
        )
    school_class.capacity = payload.capacity
    log_activity(
        db,
        actor=current_user,
        action="class.capacity",
        entity_type="class",
        entity_id=school_class.id,
        details={"capacity": payload.capacity},
    )
    db.commit()
    return ClassCapacityOut(class_id=school_class.id, capacity=payload.capacity, current_enrollment=enrolled)


@router.post("/classes/{class_id}/teachers", response_model=TeacherLinkOut, status_code=status.HTTP_201_CREATED)
def add_class_teacher(
    class_id: str,
    payload: TeacherLink,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> TeacherLinkOut:
    school_class = _get_class(db, class_id)
    teacher = _get_teacher(db, payload.teacher_id)
    link = ClassTeacher(class_id=school_class.id, teacher_id=teacher.id)
    db.add(link)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Teacher already assigned to class") from exc
    log_activity(
        db,
        actor=current_user,
        action="class.teacher.add",
        entity_type="class",
        entity_id=school_class.id,
        details={"teacher_id": teacher.id},
    )
    db.commit()
    db.refresh(link)
    return link


@router.post(
    "/classes/{class_id}/assignments",
    response_model=TeacherLinkOut,
    status_code=status.HTTP_201_CREATED,
)
def add_teacher_assignment(
    class_id: str,
    payload: TeacherLink,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> TeacherLinkOut:
    school_class = _get_class(db, class_id)
    teacher = _get_teacher(db, payload.teacher_id)
    assignment = TeacherAssignment(class_id=school_class.id, teacher_id=teacher.id, subject=payload.subject)
    db.add(assignment)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Assignment already exists") from exc
    log_activity(
        db,
        actor=current_user,
        action="class.assignment.add",
        entity_type="class",
        entity_id=school_class.id,
        details={"teacher_id": teacher.id, "subject": payload.subject},
    )
    db.commit()
    db.refresh(assignment)
    return assignment


@router.post("/classes/{class_id}/students", response_model=ProfileOut)
def enroll_student(
    class_id: str,
    payload: EnrollmentRequest,
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
) -> ProfileOut:
    school_class = _get_class(db, class_id)
    student = db.get(User, payload.student_id)
    if student is None or student.role != UserRole.student:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    if student.class_id != school_class.id and _enrollment_count(db, school_class.id) >= school_class.capacity:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Class is at full capacity")

    student.class_id = school_class.id
    student.batch_id = school_class.batch_id
    log_activity(
        db,
        actor=current_user,
        action="class.student.enroll",
        entity_type="class",
        entity_id=school_class.id,
        details={"student_id": student.id},
    )
    db.commit()
    db.refresh(student)
    return student
