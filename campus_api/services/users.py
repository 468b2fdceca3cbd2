from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from campus_api.errors import ConflictError, NotFoundError, ValidationFailedError
from campus_api.models import (
    AcademicSession,
    Course,
    IdentifierPool,
    LecturerCourseAssignment,
    User,
    UserRole,
    UserStatus,
)
from campus_api.schemas import AssignmentCreate, CourseCreate, UserCreate
from campus_api.security import hash_password, verify_password
from campus_api.services.db_retry import retry_db_operation
from campus_api.services.identifier_pools import auto_generate, mark_used

logger = logging.getLogger("campus.users")
last_login_logger = logging.getLogger("campus.auth.last_login")

STAFF_ROLES = frozenset({UserRole.LECTURER, UserRole.STAFF, UserRole.ADMIN})


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def record_last_login(session_factory: sessionmaker, user_id: str) -> None:
    """Best-effort last-login stamp, run after the login response is sent."""
    try:
        with session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                return
            user.last_login_at = datetime.now(timezone.utc)
            db.commit()
    except Exception:
        last_login_logger.exception("last_login_update_failed", extra={"user_id": user_id})


def _claim_identifier(db: Session, user: User, payload: UserCreate) -> IdentifierPool | None:
    if payload.registration_number:
        if payload.role != UserRole.STUDENT:
            raise ValidationFailedError("Only students can claim a registration number.")
        if not mark_used(db, IdentifierPool.REGISTRATION_NUMBER, payload.registration_number, user.id, commit=False):
            raise ConflictError(
                f"Registration number {payload.registration_number} is not available.",
                code="POOL_ENTRY_UNAVAILABLE",
            )
        user.registration_number = payload.registration_number
        return IdentifierPool.REGISTRATION_NUMBER

    if payload.staff_id:
        if payload.role not in STAFF_ROLES:
            raise ValidationFailedError("Only staff roles can claim a staff id.")
        if not mark_used(db, IdentifierPool.STAFF_ID, payload.staff_id, user.id, commit=False):
            raise ConflictError(f"Staff id {payload.staff_id} is not available.", code="POOL_ENTRY_UNAVAILABLE")
        user.staff_id = payload.staff_id
        return IdentifierPool.STAFF_ID

    return None


def _replenish_pool(db: Session, pool: IdentifierPool, user_id: str) -> None:
    # The user is already committed; a failed top-up must not fail the request.
    try:
        auto_generate(db, pool)
    except Exception:
        db.rollback()
        logger.exception("pool_replenish_failed", extra={"pool": pool.value, "user_id": user_id})


def create_user(db: Session, payload: UserCreate) -> User:
    if get_user_by_email(db, payload.email) is not None:
        raise ConflictError("A user with this email already exists.", code="EMAIL_TAKEN")

    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        status=UserStatus.ACTIVE,
        phone=payload.phone,
    )
    db.add(user)
    try:
        db.flush()
        claimed_pool = _claim_identifier(db, user, payload)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("User conflicts with an existing record.", code="USER_CONFLICT") from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(user)

    if claimed_pool is not None:
        _replenish_pool(db, claimed_pool, user.id)
    logger.info(
        "user_created",
        extra={"user_id": user.id, "role": user.role.value, "claimed_pool": getattr(claimed_pool, "value", None)},
    )
    return user


def list_users(db: Session, *, role: UserRole | None = None) -> list[User]:
    stmt = select(User).order_by(User.created_at.desc())
    if role is not None:
        stmt = stmt.where(User.role == role)
    return retry_db_operation(lambda: list(db.scalars(stmt).all()), session=db, operation_name="list_users")


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.", code="USER_NOT_FOUND")
    return user


def create_course(db: Session, payload: CourseCreate) -> Course:
    if payload.session_id and db.get(AcademicSession, payload.session_id) is None:
        raise NotFoundError("Session not found.", code="SESSION_NOT_FOUND")
    course = Course(
        code=payload.code,
        title=payload.title,
        level=payload.level,
        session_id=payload.session_id,
        semester=payload.semester,
    )
    db.add(course)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"Course {payload.code} already exists.", code="COURSE_EXISTS") from exc
    db.refresh(course)
    return course


def create_assignment(db: Session, payload: AssignmentCreate) -> LecturerCourseAssignment:
    lecturer = get_user(db, payload.lecturer_id)
    if lecturer.role != UserRole.LECTURER:
        raise ValidationFailedError("Assignments can only target lecturers.", code="NOT_A_LECTURER")
    if db.get(Course, payload.course_id) is None:
        raise NotFoundError("Course not found.", code="COURSE_NOT_FOUND")
    if db.get(AcademicSession, payload.session_id) is None:
        raise NotFoundError("Session not found.", code="SESSION_NOT_FOUND")

    assignment = LecturerCourseAssignment(
        lecturer_id=lecturer.id,
        course_id=payload.course_id,
        session_id=payload.session_id,
        semester=payload.semester,
        status=payload.status,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment
