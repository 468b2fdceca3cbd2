from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_api.errors import ForbiddenError, NotFoundError, ValidationFailedError
from campus_api.models import (
    AssignmentStatus,
    AttendanceMode,
    AttendanceRecord,
    AttendanceSession,
    AttendanceSessionStatus,
    AttendanceStatus,
    Course,
    LecturerCourseAssignment,
)
from campus_api.schemas import AttendanceSessionCreate

logger = logging.getLogger("campus.attendance")


def find_active_assignment(
    db: Session,
    *,
    lecturer_id: str,
    course: Course,
) -> LecturerCourseAssignment | None:
    return db.scalar(
        select(LecturerCourseAssignment).where(
            LecturerCourseAssignment.lecturer_id == lecturer_id,
            LecturerCourseAssignment.course_id == course.id,
            LecturerCourseAssignment.session_id == course.session_id,
            LecturerCourseAssignment.semester == course.semester,
            LecturerCourseAssignment.status == AssignmentStatus.ACTIVE,
        )
    )


def ensure_lecturer_assigned(db: Session, *, lecturer_id: str, course: Course) -> None:
    if not course.session_id or not course.semester:
        raise ValidationFailedError(
            f"Course {course.code} is missing session or semester information.",
            code="COURSE_INCOMPLETE",
        )
    if find_active_assignment(db, lecturer_id=lecturer_id, course=course) is None:
        raise ForbiddenError(
            f"You are not assigned to teach {course.code} for the current semester.",
            code="NOT_ASSIGNED",
        )


def create_session(db: Session, lecturer_id: str, payload: AttendanceSessionCreate) -> AttendanceSession:
    course = db.get(Course, payload.course_id)
    if course is None:
        raise NotFoundError(f"Course with ID {payload.course_id} not found.", code="COURSE_NOT_FOUND")
    ensure_lecturer_assigned(db, lecturer_id=lecturer_id, course=course)

    session = AttendanceSession(
        course_id=course.id,
        lecturer_id=lecturer_id,
        scheduled_at=payload.scheduled_at,
        mode=payload.mode,
        status=payload.status or AttendanceSessionStatus.SCHEDULED,
        qr_token=secrets.token_urlsafe(16),
        session_metadata=payload.metadata,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info(
        "attendance_session_created",
        extra={"session_id": session.id, "course_id": course.id, "lecturer_id": lecturer_id},
    )
    return session


def list_sessions(
    db: Session,
    lecturer_id: str,
    status: AttendanceSessionStatus | None = None,
) -> list[AttendanceSession]:
    stmt = select(AttendanceSession).where(AttendanceSession.lecturer_id == lecturer_id)
    if status is not None:
        stmt = stmt.where(AttendanceSession.status == status)
    stmt = stmt.order_by(AttendanceSession.scheduled_at.desc())
    return list(db.scalars(stmt).all())


def list_student_records(db: Session, student_id: str) -> list[AttendanceRecord]:
    stmt = (
        select(AttendanceRecord)
        .where(AttendanceRecord.student_id == student_id)
        .order_by(AttendanceRecord.checked_in_at.desc())
    )
    return list(db.scalars(stmt).all())


def _find_record(db: Session, session_id: str, student_id: str) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord).where(
            AttendanceRecord.session_id == session_id,
            AttendanceRecord.student_id == student_id,
        )
    )


def _apply_check_in(
    record: AttendanceRecord,
    *,
    checked_in_at: datetime,
    location: dict[str, Any] | None,
    device: dict[str, Any] | None,
) -> None:
    record.status = AttendanceStatus.PRESENT
    record.mode = AttendanceMode.QR
    record.checked_in_at = checked_in_at
    record.location = location
    record.device_info = device


def qr_check_in(
    db: Session,
    session_id: str,
    student_id: str,
    token: str,
    location: dict[str, Any] | None = None,
    device: dict[str, Any] | None = None,
) -> AttendanceRecord:
    """Record a QR check-in; repeated check-ins overwrite the same record."""
    if db.get(AttendanceSession, session_id) is None:
        raise NotFoundError("Attendance session not found.", code="SESSION_NOT_FOUND")

    now = datetime.now(timezone.utc)
    record = _find_record(db, session_id, student_id)
    if record is None:
        record = AttendanceRecord(session_id=session_id, student_id=student_id)
        _apply_check_in(record, checked_in_at=now, location=location, device=device)
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent check-in inserted the row first.
            db.rollback()
            record = _find_record(db, session_id, student_id)
            if record is None:
                raise
            _apply_check_in(record, checked_in_at=now, location=location, device=device)
            db.commit()
    else:
        _apply_check_in(record, checked_in_at=now, location=location, device=device)
        db.commit()

    db.refresh(record)
    logger.info(
        "attendance_checked_in",
        extra={"session_id": session_id, "student_id": student_id, "token_present": bool(token)},
    )
    return record
