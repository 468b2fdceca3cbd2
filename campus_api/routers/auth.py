from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from campus_api.audit import client_ip, log_audit
from campus_api.db import get_db, get_session_factory
from campus_api.errors import ApiError, ForbiddenError, UnauthorizedError
from campus_api.models import AuditActorType, UserStatus
from campus_api.schemas import Envelope, LoginRequest, LoginResponse, UserRead
from campus_api.security import (
    AuthUser,
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_user,
)
from campus_api.services.users import authenticate, get_user, record_last_login

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Envelope[LoginResponse])
def login(
    payload: LoginRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> Envelope[LoginResponse]:
    ip = client_ip(request)
    user_agent = request.headers.get("user-agent")
    request_id = getattr(request.state, "request_id", None)
    email = payload.email.strip().lower()

    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id=email,
                action="LOGIN_FAIL",
                success=False,
                ip=ip,
                user_agent=user_agent,
                details={"reason": "TOO_MANY_ATTEMPTS"},
                request_id=request_id,
            )
            raise

    user = authenticate(db, email, payload.password)
    if user is None:
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=email,
            action="LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=user_agent,
            details={"reason": "INVALID_CREDENTIALS"},
            request_id=request_id,
        )
        raise UnauthorizedError("Invalid credentials.", code="INVALID_CREDENTIALS")

    if user.status != UserStatus.ACTIVE:
        raise ForbiddenError("Account is not active.", code="ACCOUNT_INACTIVE")

    if ip:
        register_login_success(ip)

    access_token, expires_in, _claims = create_access_token(
        sub=user.id,
        roles=[user.role.value],
        email=user.email,
        name=user.name,
    )
    request.state.actor = "user"
    request.state.actor_id = user.id
    background_tasks.add_task(record_last_login, session_factory, user.id)
    return Envelope(
        data=LoginResponse(
            access_token=access_token,
            expires_in=expires_in,
            user=UserRead.model_validate(user),
        )
    )


@router.get("/me", response_model=Envelope[UserRead])
def me(
    user: AuthUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> Envelope[UserRead]:
    return Envelope(data=UserRead.model_validate(get_user(db, user.id)))
