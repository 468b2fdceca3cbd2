from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from campus_api.audit import audit_request
from campus_api.db import get_db
from campus_api.errors import ForbiddenError
from campus_api.models import RegistrationStatus, StudentSessionRegistration, UserRole
from campus_api.schemas import (
    AcademicSessionCreate,
    AcademicSessionRead,
    AcademicSessionUpdate,
    Envelope,
    ListEnvelope,
    RegistrationDecisionRequest,
    SessionRegistrationRead,
    SessionRegistrationRequest,
)
from campus_api.security import AuthUser, require_admin, require_roles
from campus_api.services import academic_sessions as sessions

router = APIRouter(prefix="/api", tags=["sessions"])

require_student = require_roles(UserRole.STUDENT)


def _ensure_own_record(user: AuthUser, student_id: str) -> None:
    if user.id != student_id:
        raise ForbiddenError("You can only manage your own session registration.")


def _registration_read(registration: StudentSessionRegistration | None) -> SessionRegistrationRead | None:
    if registration is None:
        return None
    return SessionRegistrationRead.model_validate(registration)


@router.get("/sessions", response_model=ListEnvelope[AcademicSessionRead])
def available_sessions(db: Session = Depends(get_db)) -> ListEnvelope[AcademicSessionRead]:
    items = sessions.get_available_sessions(db)
    return ListEnvelope(data=[AcademicSessionRead.model_validate(item) for item in items])


@router.get("/students/{student_id}/session", response_model=Envelope[SessionRegistrationRead | None])
def current_registration(
    student_id: str,
    user: AuthUser = Depends(require_student),
    db: Session = Depends(get_db),
) -> Envelope[SessionRegistrationRead | None]:
    _ensure_own_record(user, student_id)
    return Envelope(data=_registration_read(sessions.get_student_registration(db, student_id)))


@router.get(
    "/students/{student_id}/session/{session_id}",
    response_model=Envelope[SessionRegistrationRead | None],
)
def registration_for_session(
    student_id: str,
    session_id: str,
    user: AuthUser = Depends(require_student),
    db: Session = Depends(get_db),
) -> Envelope[SessionRegistrationRead | None]:
    _ensure_own_record(user, student_id)
    registration = sessions.get_student_registration_by_session(db, student_id, session_id)
    return Envelope(data=_registration_read(registration))


@router.post(
    "/students/{student_id}/session",
    response_model=Envelope[SessionRegistrationRead],
    status_code=status.HTTP_201_CREATED,
)
def register(
    student_id: str,
    payload: SessionRegistrationRequest,
    user: AuthUser = Depends(require_student),
    db: Session = Depends(get_db),
) -> Envelope[SessionRegistrationRead]:
    _ensure_own_record(user, student_id)
    registration = sessions.register_for_session(db, student_id, payload.session_id, payload.payment_reference)
    return Envelope(data=SessionRegistrationRead.model_validate(registration))


@router.get("/admin/sessions", response_model=ListEnvelope[AcademicSessionRead])
def all_sessions(
    _admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ListEnvelope[AcademicSessionRead]:
    return ListEnvelope(data=[AcademicSessionRead.model_validate(item) for item in sessions.get_all_sessions(db)])


@router.post("/admin/sessions", response_model=Envelope[AcademicSessionRead], status_code=status.HTTP_201_CREATED)
def create_session(
    payload: AcademicSessionCreate,
    request: Request,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[AcademicSessionRead]:
    session = sessions.create_session(db, payload)
    audit_request(db, request, admin, action="SESSION_CREATED", entity_type="academic_session", entity_id=session.id)
    return Envelope(data=AcademicSessionRead.model_validate(session))


@router.put("/admin/sessions/{session_id}", response_model=Envelope[AcademicSessionRead])
def update_session(
    session_id: str,
    payload: AcademicSessionUpdate,
    request: Request,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[AcademicSessionRead]:
    session = sessions.update_session(db, session_id, payload)
    audit_request(
        db,
        request,
        admin,
        action="SESSION_UPDATED",
        entity_type="academic_session",
        entity_id=session.id,
        details={"fields": sorted(payload.model_dump(exclude_none=True))},
    )
    return Envelope(data=AcademicSessionRead.model_validate(session))


@router.delete("/admin/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str,
    request: Request,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    sessions.delete_session(db, session_id)
    audit_request(db, request, admin, action="SESSION_DELETED", entity_type="academic_session", entity_id=session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/admin/session-registrations", response_model=ListEnvelope[SessionRegistrationRead])
def registrations(
    session_id: str | None = Query(default=None, alias="sessionId"),
    registration_status: RegistrationStatus | None = Query(default=None, alias="status"),
    _admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ListEnvelope[SessionRegistrationRead]:
    items = sessions.list_registrations(db, session_id=session_id, status=registration_status)
    return ListEnvelope(data=[SessionRegistrationRead.model_validate(item) for item in items])


@router.post(
    "/admin/session-registrations/{registration_id}/approve",
    response_model=Envelope[SessionRegistrationRead],
)
def approve(
    registration_id: str,
    payload: RegistrationDecisionRequest | None = None,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[SessionRegistrationRead]:
    registration = sessions.approve_registration(db, registration_id, admin.id, payload.notes if payload else None)
    return Envelope(data=SessionRegistrationRead.model_validate(registration))


@router.post(
    "/admin/session-registrations/{registration_id}/reject",
    response_model=Envelope[SessionRegistrationRead],
)
def reject(
    registration_id: str,
    payload: RegistrationDecisionRequest | None = None,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[SessionRegistrationRead]:
    registration = sessions.reject_registration(db, registration_id, admin.id, payload.notes if payload else None)
    return Envelope(data=SessionRegistrationRead.model_validate(registration))


@router.post(
    "/admin/session-registrations/{registration_id}/verify-payment",
    response_model=Envelope[SessionRegistrationRead],
)
def verify_payment(
    registration_id: str,
    payload: RegistrationDecisionRequest | None = None,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[SessionRegistrationRead]:
    registration = sessions.verify_payment(db, registration_id, admin.id, payload.notes if payload else None)
    return Envelope(data=SessionRegistrationRead.model_validate(registration))
