from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from campus_api.db import get_db
from campus_api.models import AttendanceSession, AttendanceSessionStatus, UserRole
from campus_api.schemas import (
    AttendanceRecordRead,
    AttendanceSessionCreate,
    AttendanceSessionRead,
    Envelope,
    ListEnvelope,
    QRCheckInRequest,
)
from campus_api.security import AuthUser, require_roles
from campus_api.services.attendance import create_session, list_sessions, list_student_records, qr_check_in

router = APIRouter(prefix="/attendance", tags=["attendance"])

require_lecturer = require_roles(UserRole.LECTURER)
require_student = require_roles(UserRole.STUDENT)


def _session_read(session: AttendanceSession) -> AttendanceSessionRead:
    return AttendanceSessionRead(
        id=session.id,
        course_id=session.course_id,
        lecturer_id=session.lecturer_id,
        scheduled_at=session.scheduled_at,
        mode=session.mode,
        status=session.status,
        qr_token=session.qr_token,
        metadata=session.session_metadata,
        created_at=session.created_at,
    )


@router.post("/sessions", response_model=Envelope[AttendanceSessionRead], status_code=status.HTTP_201_CREATED)
def open_session(
    payload: AttendanceSessionCreate,
    user: AuthUser = Depends(require_lecturer),
    db: Session = Depends(get_db),
) -> Envelope[AttendanceSessionRead]:
    return Envelope(data=_session_read(create_session(db, user.id, payload)))


@router.get("/sessions", response_model=ListEnvelope[AttendanceSessionRead])
def lecturer_sessions(
    session_status: AttendanceSessionStatus | None = Query(default=None, alias="status"),
    user: AuthUser = Depends(require_lecturer),
    db: Session = Depends(get_db),
) -> ListEnvelope[AttendanceSessionRead]:
    sessions = list_sessions(db, user.id, session_status)
    return ListEnvelope(data=[_session_read(item) for item in sessions])


@router.get("/records/me", response_model=ListEnvelope[AttendanceRecordRead])
def my_records(
    user: AuthUser = Depends(require_student),
    db: Session = Depends(get_db),
) -> ListEnvelope[AttendanceRecordRead]:
    records = list_student_records(db, user.id)
    return ListEnvelope(data=[AttendanceRecordRead.model_validate(item) for item in records])


@router.post("/qr-checkin", response_model=Envelope[AttendanceRecordRead])
def check_in(
    payload: QRCheckInRequest,
    request: Request,
    user: AuthUser = Depends(require_student),
    db: Session = Depends(get_db),
) -> Envelope[AttendanceRecordRead]:
    record = qr_check_in(
        db,
        payload.session_id,
        user.id,
        payload.token,
        location=payload.location,
        device=payload.device_info,
    )
    request.state.attendance_record_id = record.id
    return Envelope(data=AttendanceRecordRead.model_validate(record))
