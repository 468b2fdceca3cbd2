from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from campus_api.audit import audit_request
from campus_api.db import get_db
from campus_api.errors import ForbiddenError
from campus_api.models import UserRole
from campus_api.schemas import (
    AttemptCreate,
    AttemptRead,
    AttemptUpdate,
    Envelope,
    ExamCreate,
    ExamRead,
    ExamStatusUpdate,
    ListEnvelope,
    NotificationRead,
)
from campus_api.security import AuthUser, require_admin, require_roles, require_user
from campus_api.services import exam_integrity as exams

router = APIRouter(prefix="/api", tags=["exam-integrity"])

require_lecturer = require_roles(UserRole.LECTURER)
require_student = require_roles(UserRole.STUDENT)


def _ensure_self_or_admin(user: AuthUser, subject_id: str) -> None:
    if user.id != subject_id and not user.is_admin:
        raise ForbiddenError("You can only access your own records.")


@router.post("/exams", response_model=Envelope[ExamRead], status_code=status.HTTP_201_CREATED)
def create_exam(
    payload: ExamCreate,
    user: AuthUser = Depends(require_lecturer),
    db: Session = Depends(get_db),
) -> Envelope[ExamRead]:
    return Envelope(data=ExamRead.model_validate(exams.create_exam(db, user.id, payload)))


@router.get("/exams/review", response_model=ListEnvelope[ExamRead])
def exams_for_review(
    _admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ListEnvelope[ExamRead]:
    return ListEnvelope(data=[ExamRead.model_validate(item) for item in exams.list_exams_for_review(db)])


@router.get("/exams/lecturer/{lecturer_id}", response_model=ListEnvelope[ExamRead])
def exams_for_lecturer(
    lecturer_id: str,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[ExamRead]:
    _ensure_self_or_admin(user, lecturer_id)
    items = exams.list_exams_for_lecturer(db, lecturer_id)
    return ListEnvelope(data=[ExamRead.model_validate(item) for item in items])


@router.get("/exams/course/{course_code}", response_model=ListEnvelope[ExamRead])
def approved_exams_for_course(
    course_code: str,
    _user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[ExamRead]:
    items = exams.list_approved_exams_for_course(db, course_code)
    return ListEnvelope(data=[ExamRead.model_validate(item) for item in items])


@router.get("/exams/{exam_id}", response_model=Envelope[ExamRead])
def get_exam(
    exam_id: str,
    _user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[ExamRead]:
    return Envelope(data=ExamRead.model_validate(exams.get_exam(db, exam_id)))


@router.put("/exams/{exam_id}/status", response_model=Envelope[ExamRead])
def update_exam_status(
    exam_id: str,
    payload: ExamStatusUpdate,
    request: Request,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[ExamRead]:
    exam = exams.update_exam_status(db, exam_id, admin.id, payload)
    audit_request(
        db,
        request,
        admin,
        action="EXAM_STATUS_CHANGED",
        entity_type="exam",
        entity_id=exam.id,
        details={"status": exam.status.value},
    )
    return Envelope(data=ExamRead.model_validate(exam))


@router.post("/attempts", response_model=Envelope[AttemptRead], status_code=status.HTTP_201_CREATED)
def start_attempt(
    payload: AttemptCreate,
    user: AuthUser = Depends(require_student),
    db: Session = Depends(get_db),
) -> Envelope[AttemptRead]:
    return Envelope(data=AttemptRead.model_validate(exams.create_attempt(db, payload.exam_id, user.id)))


@router.get("/attempts/student/{student_id}", response_model=ListEnvelope[AttemptRead])
def attempts_for_student(
    student_id: str,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[AttemptRead]:
    _ensure_self_or_admin(user, student_id)
    items = exams.list_attempts_for_student(db, student_id)
    return ListEnvelope(data=[AttemptRead.model_validate(item) for item in items])


@router.get("/attempts/exam/{exam_id}", response_model=ListEnvelope[AttemptRead])
def attempts_for_exam(
    exam_id: str,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[AttemptRead]:
    exam = exams.get_exam(db, exam_id)
    _ensure_self_or_admin(user, exam.lecturer_id)
    items = exams.list_attempts_for_exam(db, exam_id)
    return ListEnvelope(data=[AttemptRead.model_validate(item) for item in items])


@router.get("/attempts/{attempt_id}", response_model=Envelope[AttemptRead])
def get_attempt(
    attempt_id: str,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[AttemptRead]:
    attempt = exams.get_attempt(db, attempt_id)
    if attempt.student_id != user.id and attempt.exam.lecturer_id != user.id and not user.is_admin:
        raise ForbiddenError("You can only access your own attempts.")
    return Envelope(data=AttemptRead.model_validate(attempt))


@router.put("/attempts/{attempt_id}", response_model=Envelope[AttemptRead])
def update_attempt(
    attempt_id: str,
    payload: AttemptUpdate,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[AttemptRead]:
    attempt = exams.get_attempt(db, attempt_id)
    _ensure_self_or_admin(user, attempt.student_id)
    return Envelope(data=AttemptRead.model_validate(exams.update_attempt(db, attempt_id, payload)))


@router.get("/notifications/me", response_model=ListEnvelope[NotificationRead])
def my_notifications(
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ListEnvelope[NotificationRead]:
    items = exams.list_notifications_for_user(db, user.id, include_admin=user.is_admin)
    return ListEnvelope(data=[NotificationRead.model_validate(item) for item in items])


@router.put("/notifications/{notification_id}/seen", response_model=Envelope[NotificationRead])
def mark_seen(
    notification_id: str,
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[NotificationRead]:
    notification = exams.mark_notification_seen(db, notification_id, user.id, include_admin=user.is_admin)
    return Envelope(data=NotificationRead.model_validate(notification))
