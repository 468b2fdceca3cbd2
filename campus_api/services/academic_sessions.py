from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_api.errors import ConflictError, NotFoundError, ValidationFailedError
from campus_api.models import (
    AcademicSession,
    AcademicSessionStatus,
    ApprovalType,
    RegistrationStatus,
    StudentSessionRegistration,
    User,
    UserRole,
)
from campus_api.schemas import AcademicSessionCreate, AcademicSessionUpdate
from campus_api.services.db_retry import retry_db_operation
from campus_api.settings import get_settings

logger = logging.getLogger("campus.sessions")

REGISTRABLE_STATUSES = frozenset({AcademicSessionStatus.ACTIVE, AcademicSessionStatus.PENDING})
APPROVED_STATUSES = frozenset({RegistrationStatus.APPROVED, RegistrationStatus.PAYMENT_VERIFIED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_available_sessions(db: Session) -> list[AcademicSession]:
    stmt = (
        select(AcademicSession)
        .order_by(AcademicSession.start_date.desc())
        .limit(get_settings().available_sessions_limit)
    )
    return retry_db_operation(
        lambda: list(db.scalars(stmt).all()),
        session=db,
        operation_name="get_available_sessions",
    )


def get_all_sessions(db: Session) -> list[AcademicSession]:
    stmt = (
        select(AcademicSession)
        .order_by(AcademicSession.start_date.desc())
        .limit(get_settings().admin_sessions_limit)
    )
    return retry_db_operation(
        lambda: list(db.scalars(stmt).all()),
        session=db,
        operation_name="get_all_sessions",
    )


def get_session(db: Session, session_id: str) -> AcademicSession:
    session = db.get(AcademicSession, session_id)
    if session is None:
        raise NotFoundError("Session not found.", code="SESSION_NOT_FOUND")
    return session


def create_session(db: Session, payload: AcademicSessionCreate) -> AcademicSession:
    if _as_utc(payload.end_date) < _as_utc(payload.start_date):
        raise ValidationFailedError("endDate must not be before startDate.")
    session = AcademicSession(
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=payload.status or AcademicSessionStatus.PENDING,
        requires_payment=bool(payload.requires_payment),
        payment_amount=payload.payment_amount,
        payment_currency=payload.payment_currency or "NGN",
        is_active=bool(payload.is_active),
        registration_open=bool(payload.registration_open),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def update_session(db: Session, session_id: str, patch: AcademicSessionUpdate) -> AcademicSession:
    session = get_session(db, session_id)
    changes = patch.model_dump(exclude_none=True)
    if not changes:
        raise ValidationFailedError("No fields provided for update.", code="NO_FIELDS")
    for field_name, value in changes.items():
        setattr(session, field_name, value)
    if _as_utc(session.end_date) < _as_utc(session.start_date):
        db.rollback()
        raise ValidationFailedError("endDate must not be before startDate.")
    db.commit()
    db.refresh(session)
    return session


def delete_session(db: Session, session_id: str) -> None:
    session = get_session(db, session_id)
    db.delete(session)
    db.commit()


def _registration_status(
    session: AcademicSession,
    payment_reference: str | None,
    existing: StudentSessionRegistration | None,
) -> RegistrationStatus:
    if not session.requires_payment:
        return RegistrationStatus.APPROVED
    if payment_reference:
        return RegistrationStatus.PAYMENT_VERIFIED
    if existing is not None and existing.status in APPROVED_STATUSES:
        return existing.status
    return RegistrationStatus.PAYMENT_PENDING


def register_for_session(
    db: Session,
    student_id: str,
    session_id: str,
    payment_reference: str | None = None,
) -> StudentSessionRegistration:
    student = db.get(User, student_id)
    if student is None:
        raise NotFoundError(f"Student with ID {student_id} not found.", code="STUDENT_NOT_FOUND")
    if student.role != UserRole.STUDENT:
        raise ValidationFailedError(f"User with ID {student_id} is not registered as a student.", code="NOT_A_STUDENT")

    session = get_session(db, session_id)
    if session.status not in REGISTRABLE_STATUSES:
        raise ValidationFailedError(
            f"Session is not available for registration. Current status: {session.status.value}",
            code="SESSION_NOT_OPEN",
        )

    existing = retry_db_operation(
        lambda: db.scalar(
            select(StudentSessionRegistration).where(
                StudentSessionRegistration.student_id == student.id,
                StudentSessionRegistration.session_id == session.id,
            )
        ),
        session=db,
        operation_name="find_session_registration",
    )
    status = _registration_status(session, payment_reference, existing)
    approved = status in APPROVED_STATUSES
    now = _utcnow()

    if existing is not None:
        registration = existing
        registration.payment_reference = payment_reference or existing.payment_reference
        registration.payment_verified = True if payment_reference else existing.payment_verified
        registration.status = status
        if approved and registration.approved_at is None:
            registration.approved_at = now
    else:
        registration = StudentSessionRegistration(
            student_id=student.id,
            session_id=session.id,
            status=status,
            approval_type=ApprovalType.PAYMENT if session.requires_payment else ApprovalType.ADMIN,
            payment_reference=payment_reference,
            payment_verified=bool(payment_reference),
            approved_at=now if approved else None,
        )
        db.add(registration)

    if approved:
        student.current_session_id = session.id
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Registration was created concurrently.", code="REGISTRATION_CONFLICT") from exc
    db.refresh(registration)
    logger.info(
        "session_registration_saved",
        extra={"student_id": student.id, "session_id": session.id, "status": status.value},
    )
    return registration


def get_student_registration(db: Session, student_id: str) -> StudentSessionRegistration | None:
    stmt = (
        select(StudentSessionRegistration)
        .where(
            StudentSessionRegistration.student_id == student_id,
            StudentSessionRegistration.status.in_(sorted(APPROVED_STATUSES)),
        )
        .order_by(StudentSessionRegistration.created_at.desc())
        .limit(1)
    )
    return retry_db_operation(
        lambda: db.scalars(stmt).unique().first(),
        session=db,
        operation_name="get_student_registration",
    )


def get_student_registration_by_session(
    db: Session,
    student_id: str,
    session_id: str,
) -> StudentSessionRegistration | None:
    stmt = select(StudentSessionRegistration).where(
        StudentSessionRegistration.student_id == student_id,
        StudentSessionRegistration.session_id == session_id,
    )
    return retry_db_operation(
        lambda: db.scalars(stmt).unique().first(),
        session=db,
        operation_name="get_student_registration_by_session",
    )


def list_registrations(
    db: Session,
    *,
    session_id: str | None = None,
    status: RegistrationStatus | None = None,
) -> list[StudentSessionRegistration]:
    stmt = select(StudentSessionRegistration)
    if session_id:
        stmt = stmt.where(StudentSessionRegistration.session_id == session_id)
    if status is not None:
        stmt = stmt.where(StudentSessionRegistration.status == status)
    stmt = stmt.order_by(StudentSessionRegistration.created_at.desc())
    return retry_db_operation(
        lambda: list(db.scalars(stmt).unique().all()),
        session=db,
        operation_name="list_registrations",
    )


def _get_registration(db: Session, registration_id: str) -> StudentSessionRegistration:
    registration = db.get(StudentSessionRegistration, registration_id)
    if registration is None:
        raise NotFoundError("Registration not found.", code="REGISTRATION_NOT_FOUND")
    return registration


def _decide(
    db: Session,
    registration_id: str,
    admin_id: str,
    notes: str | None,
    *,
    status: RegistrationStatus,
) -> StudentSessionRegistration:
    registration = _get_registration(db, registration_id)
    registration.status = status
    registration.approved_by = admin_id
    registration.approved_at = _utcnow()
    registration.notes = notes
    if status == RegistrationStatus.PAYMENT_VERIFIED:
        registration.payment_verified = True
    if status in APPROVED_STATUSES:
        student = db.get(User, registration.student_id)
        if student is not None:
            student.current_session_id = registration.session_id
    db.commit()
    db.refresh(registration)
    logger.info(
        "session_registration_decided",
        extra={"registration_id": registration.id, "status": status.value, "admin_id": admin_id},
    )
    return registration


def approve_registration(
    db: Session,
    registration_id: str,
    admin_id: str,
    notes: str | None = None,
) -> StudentSessionRegistration:
    return _decide(db, registration_id, admin_id, notes, status=RegistrationStatus.APPROVED)


def reject_registration(
    db: Session,
    registration_id: str,
    admin_id: str,
    notes: str | None = None,
) -> StudentSessionRegistration:
    return _decide(db, registration_id, admin_id, notes, status=RegistrationStatus.REJECTED)


def verify_payment(
    db: Session,
    registration_id: str,
    admin_id: str,
    notes: str | None = None,
) -> StudentSessionRegistration:
    return _decide(db, registration_id, admin_id, notes, status=RegistrationStatus.PAYMENT_VERIFIED)
