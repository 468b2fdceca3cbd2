from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import campus_api.models  # noqa: F401
from campus_api.db import Base, get_db, get_session_factory
from campus_api.main import app
from campus_api.models import (
    AcademicSession,
    AcademicSessionStatus,
    Course,
    LecturerCourseAssignment,
    User,
    UserRole,
    UserStatus,
)
from campus_api.security import create_access_token, hash_password, reset_login_attempts

DEFAULT_PASSWORD = "correct-horse-battery"


def make_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def bearer(user_id: str, *roles: UserRole, email: str | None = None, name: str | None = None) -> dict[str, str]:
    token, _expires_in, _claims = create_access_token(
        sub=user_id,
        roles=[role.value for role in roles],
        email=email,
        name=name,
    )
    return {"Authorization": f"Bearer {token}"}


def add_user(
    db: Session,
    *,
    email: str,
    role: UserRole,
    name: str = "Test User",
    password: str = DEFAULT_PASSWORD,
    status: UserStatus = UserStatus.ACTIVE,
) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        status=status,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_academic_session(
    db: Session,
    *,
    name: str = "2025/2026",
    status: AcademicSessionStatus = AcademicSessionStatus.ACTIVE,
    requires_payment: bool = False,
) -> AcademicSession:
    start = datetime(2025, 9, 1, tzinfo=timezone.utc)
    session = AcademicSession(
        name=name,
        start_date=start,
        end_date=start + timedelta(days=300),
        status=status,
        requires_payment=requires_payment,
        is_active=True,
        registration_open=True,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def add_assigned_course(db: Session, lecturer: User, *, code: str = "CSC101") -> Course:
    """Course bound to a session and semester, with ``lecturer`` assigned to it."""
    session = add_academic_session(db, name=f"Session for {code}")
    course = Course(code=code, title="Intro to Computing", level=100, session_id=session.id, semester="FIRST")
    db.add(course)
    db.flush()
    db.add(
        LecturerCourseAssignment(
            lecturer_id=lecturer.id,
            course_id=course.id,
            session_id=session.id,
            semester="FIRST",
        )
    )
    db.commit()
    db.refresh(course)
    return course


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()

    def tearDown(self) -> None:
        self.db.close()
        self.session_factory.kw["bind"].dispose()


class ApiTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()

        def _override_get_db() -> Generator[Session, None, None]:
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _override_get_db
        app.dependency_overrides[get_session_factory] = lambda: self.session_factory
        reset_login_attempts()
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        reset_login_attempts()
        super().tearDown()

    def fresh_session(self) -> Session:
        return self.session_factory()
