from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from campus_api.audit import audit_request
from campus_api.db import get_db
from campus_api.models import UserRole
from campus_api.schemas import (
    AssignmentCreate,
    AssignmentRead,
    CourseCreate,
    CourseRead,
    Envelope,
    ListEnvelope,
    UserCreate,
    UserRead,
)
from campus_api.security import AuthUser, require_admin
from campus_api.services.users import create_assignment, create_course, create_user, list_users

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users", response_model=ListEnvelope[UserRead])
def users(
    role: UserRole | None = Query(default=None),
    _admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ListEnvelope[UserRead]:
    items = list_users(db, role=role)
    return ListEnvelope(data=[UserRead.model_validate(item) for item in items], meta={"total": len(items)})


@router.post("/users", response_model=Envelope[UserRead], status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserCreate,
    request: Request,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[UserRead]:
    user = create_user(db, payload)
    audit_request(
        db,
        request,
        admin,
        action="USER_CREATED",
        entity_type="user",
        entity_id=user.id,
        details={
            "role": user.role.value,
            "registration_number": user.registration_number,
            "staff_id": user.staff_id,
        },
    )
    return Envelope(data=UserRead.model_validate(user))


@router.post("/courses", response_model=Envelope[CourseRead], status_code=status.HTTP_201_CREATED)
def add_course(
    payload: CourseCreate,
    _admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[CourseRead]:
    return Envelope(data=CourseRead.model_validate(create_course(db, payload)))


@router.post("/assignments", response_model=Envelope[AssignmentRead], status_code=status.HTTP_201_CREATED)
def add_assignment(
    payload: AssignmentCreate,
    _admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Envelope[AssignmentRead]:
    return Envelope(data=AssignmentRead.model_validate(create_assignment(db, payload)))
