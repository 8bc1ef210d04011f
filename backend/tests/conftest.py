import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jawara.api.deps import get_db
from jawara.core.config import get_settings
from jawara.db.base import Base
from jawara.main import app
from jawara.models.school_class import ClassTeacher, SchoolClass, TeacherAssignment
from jawara.models.user import User, UserRole


@pytest.fixture()
def session_factory():
    # One in-memory database per test, shared by the app and the seeding session.
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session):
    counter = {"value": 0}

    def _make_user(role: UserRole, *, class_id=None, batch_id=None, is_active=True, user_id=None) -> User:
        counter["value"] += 1
        extra = {"id": user_id} if user_id else {}
        user = User(
            **extra,
            full_name=f"{role.value.title()} {counter['value']}",
            email=f"{role.value}{counter['value']}@smajawara.sch.id",
            role=role,
            class_id=class_id,
            batch_id=batch_id,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_class(db_session):
    def _make_class(name: str = "7A", *, batch_id=None, capacity: int = 30) -> SchoolClass:
        school_class = SchoolClass(name=name, batch_id=batch_id, capacity=capacity, is_active=True)
        db_session.add(school_class)
        db_session.commit()
        db_session.refresh(school_class)
        return school_class

    return _make_class


@pytest.fixture()
def assign_teacher(db_session):
    def _assign(teacher: User, school_class: SchoolClass, *, homeroom: bool = False, subject: str = "Math") -> None:
        if homeroom:
            db_session.add(ClassTeacher(class_id=school_class.id, teacher_id=teacher.id))
        else:
            db_session.add(TeacherAssignment(class_id=school_class.id, teacher_id=teacher.id, subject=subject))
        db_session.commit()

    return _assign


@pytest.fixture()
def auth_headers():
    settings = get_settings()

    def _headers(user: User) -> dict[str, str]:
        token = jwt.encode({"sub": user.id}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
        return {"Authorization": f"Bearer {token}"}

    return _headers
