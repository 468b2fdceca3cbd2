from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_api.errors import ConflictError, NotFoundError
from campus_api.models import (
    ADMIN_NOTIFICATION_USER_ID,
    Course,
    ExamAttempt,
    ExamAttemptStatus,
    ExamIntegrity,
    ExamIntegrityStatus,
    ExamNotification,
    User,
)
from campus_api.schemas import AttemptUpdate, ExamCreate, ExamStatusUpdate
from campus_api.services.attendance import ensure_lecturer_assigned

logger = logging.getLogger("campus.exams")


def status_notification_message(exam_title: str, payload: ExamStatusUpdate) -> str:
    if payload.status == ExamIntegrityStatus.APPROVED:
        return f'Your exam "{exam_title}" has been approved and is now available to students.'
    if payload.status == ExamIntegrityStatus.DECLINED:
        reason = payload.rejection_reason or "No reason provided"
        return f'Your exam "{exam_title}" has been declined. Reason: {reason}'
    if payload.status == ExamIntegrityStatus.NEEDS_REVIEW:
        notes = payload.review_notes or "Please review and resubmit"
        return f'Your exam "{exam_title}" has been sent back for review. Notes: {notes}'
    return f'Your exam "{exam_title}" is pending admin review.'


def create_exam(db: Session, lecturer_id: str, payload: ExamCreate) -> ExamIntegrity:
    lecturer = db.get(User, lecturer_id)
    if lecturer is None:
        raise NotFoundError("Lecturer not found.", code="LECTURER_NOT_FOUND")

    course = db.scalar(select(Course).where(Course.code == payload.course_code))
    if course is None:
        raise NotFoundError(f"Course {payload.course_code} not found.", code="COURSE_NOT_FOUND")
    ensure_lecturer_assigned(db, lecturer_id=lecturer_id, course=course)

    exam = ExamIntegrity(
        lecturer_id=lecturer.id,
        title=payload.title,
        course_code=payload.course_code,
        questions=payload.questions,
        duration=payload.duration,
        allowed_attempts=payload.allowed_attempts,
        start_date=payload.start_date,
        end_date=payload.end_date,
        access_code=payload.access_code,
        status=ExamIntegrityStatus.PENDING_ADMIN_REVIEW,
    )
    db.add(exam)
    db.flush()
    db.add(
        ExamNotification(
            user_id=ADMIN_NOTIFICATION_USER_ID,
            exam_id=exam.id,
            message=f'New exam "{exam.title}" submitted by {lecturer.name} for review',
            seen=False,
        )
    )
    db.commit()
    db.refresh(exam)
    logger.info("exam_created", extra={"exam_id": exam.id, "lecturer_id": lecturer.id})
    return exam


def get_exam(db: Session, exam_id: str) -> ExamIntegrity:
    exam = db.get(ExamIntegrity, exam_id)
    if exam is None:
        raise NotFoundError("Exam not found.", code="EXAM_NOT_FOUND")
    return exam


def list_exams_for_lecturer(db: Session, lecturer_id: str) -> list[ExamIntegrity]:
    stmt = (
        select(ExamIntegrity)
        .where(ExamIntegrity.lecturer_id == lecturer_id)
        .order_by(ExamIntegrity.created_at.desc())
    )
    return list(db.scalars(stmt).unique().all())


def list_exams_for_review(db: Session) -> list[ExamIntegrity]:
    stmt = (
        select(ExamIntegrity)
        .where(ExamIntegrity.status == ExamIntegrityStatus.PENDING_ADMIN_REVIEW)
        .order_by(ExamIntegrity.created_at.asc())
    )
    return list(db.scalars(stmt).unique().all())


def list_approved_exams_for_course(db: Session, course_code: str) -> list[ExamIntegrity]:
    stmt = (
        select(ExamIntegrity)
        .where(
            ExamIntegrity.course_code == course_code,
            ExamIntegrity.status == ExamIntegrityStatus.APPROVED,
        )
        .order_by(ExamIntegrity.start_date.asc())
    )
    return list(db.scalars(stmt).unique().all())


def update_exam_status(db: Session, exam_id: str, admin_id: str, payload: ExamStatusUpdate) -> ExamIntegrity:
    exam = get_exam(db, exam_id)
    now = datetime.now(timezone.utc)

    exam.status = payload.status
    exam.reviewed_by = admin_id
    exam.reviewed_at = now
    exam.updated_at = now
    if payload.status == ExamIntegrityStatus.NEEDS_REVIEW and payload.review_notes:
        exam.review_notes = payload.review_notes
    if payload.status == ExamIntegrityStatus.DECLINED and payload.rejection_reason:
        exam.rejection_reason = payload.rejection_reason

    db.add(
        ExamNotification(
            user_id=exam.lecturer_id,
            exam_id=exam.id,
            message=status_notification_message(exam.title, payload),
            seen=False,
        )
    )
    db.commit()
    db.refresh(exam)
    logger.info(
        "exam_status_updated",
        extra={"exam_id": exam.id, "status": exam.status.value, "admin_id": admin_id},
    )
    return exam


def create_attempt(db: Session, exam_id: str, student_id: str) -> ExamAttempt:
    exam = get_exam(db, exam_id)
    if exam.status != ExamIntegrityStatus.APPROVED:
        raise ConflictError("Exam is not approved.", code="EXAM_NOT_APPROVED")

    existing = int(
        db.scalar(
            select(func.count())
            .select_from(ExamAttempt)
            .where(ExamAttempt.exam_id == exam.id, ExamAttempt.student_id == student_id)
        )
        or 0
    )
    if existing >= exam.allowed_attempts:
        raise ConflictError("Maximum attempts reached.", code="MAX_ATTEMPTS_REACHED")

    attempt = ExamAttempt(
        exam_id=exam.id,
        student_id=student_id,
        attempt_number=existing + 1,
        status=ExamAttemptStatus.IN_PROGRESS,
        start_time=datetime.now(timezone.utc),
    )
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Another attempt was started concurrently.", code="MAX_ATTEMPTS_REACHED") from exc
    db.refresh(attempt)
    return attempt


def get_attempt(db: Session, attempt_id: str) -> ExamAttempt:
    attempt = db.get(ExamAttempt, attempt_id)
    if attempt is None:
        raise NotFoundError("Attempt not found.", code="ATTEMPT_NOT_FOUND")
    return attempt


def list_attempts_for_student(db: Session, student_id: str) -> list[ExamAttempt]:
    stmt = select(ExamAttempt).where(ExamAttempt.student_id == student_id).order_by(ExamAttempt.created_at.desc())
    return list(db.scalars(stmt).unique().all())


def list_attempts_for_exam(db: Session, exam_id: str) -> list[ExamAttempt]:
    get_exam(db, exam_id)
    stmt = (
        select(ExamAttempt)
        .where(ExamAttempt.exam_id == exam_id)
        .order_by(ExamAttempt.student_id.asc(), ExamAttempt.attempt_number.asc())
    )
    return list(db.scalars(stmt).unique().all())


def update_attempt(db: Session, attempt_id: str, patch: AttemptUpdate) -> ExamAttempt:
    attempt = get_attempt(db, attempt_id)
    for field_name, value in patch.model_dump(exclude_none=True).items():
        setattr(attempt, field_name, value)
    db.commit()
    db.refresh(attempt)
    return attempt


def list_notifications_for_user(db: Session, user_id: str, *, include_admin: bool = False) -> list[ExamNotification]:
    condition = ExamNotification.user_id == user_id
    if include_admin:
        condition = or_(condition, ExamNotification.user_id == ADMIN_NOTIFICATION_USER_ID)
    stmt = select(ExamNotification).where(condition).order_by(ExamNotification.created_at.desc())
    return list(db.scalars(stmt).all())


def mark_notification_seen(
    db: Session,
    notification_id: str,
    user_id: str,
    *,
    include_admin: bool = False,
) -> ExamNotification:
    notification = db.get(ExamNotification, notification_id)
    allowed = {user_id, ADMIN_NOTIFICATION_USER_ID} if include_admin else {user_id}
    if notification is None or notification.user_id not in allowed:
        raise NotFoundError("Notification not found.", code="NOTIFICATION_NOT_FOUND")
    notification.seen = True
    db.commit()
    db.refresh(notification)
    return notification
