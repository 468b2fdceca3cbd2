from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Generic, TypeVar

from pydantic import AfterValidator, AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from campus_api.models import (
    AcademicSessionStatus,
    ApprovalType,
    AssignmentStatus,
    AttendanceMode,
    AttendanceSessionStatus,
    AttendanceStatus,
    ExamAttemptStatus,
    ExamIntegrityStatus,
    GigStatus,
    OrderStatus,
    ProposalStatus,
    RegistrationStatus,
    TransactionStatus,
    TransactionType,
    UserRole,
    UserStatus,
)

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(BaseModel, Generic[T]):
    data: T


class ListEnvelope(BaseModel, Generic[T]):
    data: list[T]
    meta: dict[str, Any] | None = None


# Auth and users


class LoginRequest(CamelModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class UserRead(CamelModel):
    id: str
    name: str
    email: str
    role: UserRole
    status: UserStatus
    phone: str | None = None
    registration_number: str | None = None
    staff_id: str | None = None
    current_session_id: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime


class LoginResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class UserCreate(CamelModel):
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=255)
    role: UserRole
    phone: str | None = Field(default=None, max_length=64)
    registration_number: str | None = Field(default=None, max_length=64)
    staff_id: str | None = Field(default=None, max_length=64)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if "@" not in normalized:
            raise ValueError("email must contain '@'")
        return normalized


class CourseCreate(CamelModel):
    code: str = Field(min_length=2, max_length=32)
    title: str = Field(min_length=2, max_length=255)
    level: int | None = Field(default=None, ge=1)
    session_id: str | None = None
    semester: str | None = Field(default=None, max_length=32)


class CourseRead(CamelModel):
    id: str
    code: str
    title: str
    level: int | None = None
    session_id: str | None = None
    semester: str | None = None


class AssignmentCreate(CamelModel):
    lecturer_id: str
    course_id: str
    session_id: str
    semester: str = Field(min_length=1, max_length=32)
    status: AssignmentStatus = AssignmentStatus.ACTIVE


class AssignmentRead(CamelModel):
    id: str
    lecturer_id: str
    course_id: str
    session_id: str
    semester: str
    status: AssignmentStatus
    created_at: datetime


# Identifier pools


class RegistrationNumberMarkUsedRequest(CamelModel):
    registration_number: str = Field(min_length=1, max_length=64)


class StaffIdMarkUsedRequest(CamelModel):
    staff_id: str = Field(min_length=1, max_length=64)


class PoolInitRead(CamelModel):
    initialized: bool
    count: int


class PoolMarkUsedRead(CamelModel):
    value: str
    used: bool


class AutoGenerateRead(CamelModel):
    generated: int
    new_count: int


# Marketplace

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def _check_attachment_url(value: str) -> str:
    """Validate as an http(s) URL but keep the caller's spelling."""
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError as exc:
        raise ValueError("attachments must be http(s) URLs") from exc
    return value


AttachmentUrl = Annotated[str, AfterValidator(_check_attachment_url)]


def _clean_tags(value: list[str] | None) -> list[str] | None:
    if value is None:
        return value
    if any(not tag.strip() for tag in value):
        raise ValueError("tags must be non-empty strings")
    return [tag.strip() for tag in value]


class GigCreate(CamelModel):
    title: str = Field(min_length=3, max_length=120)
    description: str = Field(min_length=10)
    category: str = Field(min_length=2, max_length=64)
    price: Decimal = Field(ge=0)
    currency: str | None = Field(default=None, min_length=2, max_length=8)
    delivery_time_days: int = Field(gt=0)
    attachments: list[AttachmentUrl] | None = None
    tags: list[str] | None = None
    status: GigStatus | None = None

    @field_validator("tags")
    @classmethod
    def _tags_not_blank(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)


class GigUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=3, max_length=120)
    description: str | None = Field(default=None, min_length=10)
    category: str | None = Field(default=None, min_length=2, max_length=64)
    price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=2, max_length=8)
    delivery_time_days: int | None = Field(default=None, gt=0)
    attachments: list[AttachmentUrl] | None = None
    tags: list[str] | None = None
    status: GigStatus | None = None

    @field_validator("tags")
    @classmethod
    def _tags_not_blank(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)


class GigFilters(CamelModel):
    search: str | None = None
    category: str | None = None
    min_price: Decimal | None = Field(default=None, ge=0)
    max_price: Decimal | None = Field(default=None, ge=0)
    status: GigStatus | None = None
    owner_id: str | None = None


class GigRead(CamelModel):
    id: str
    owner_id: str
    title: str
    description: str
    category: str
    price: float
    currency: str
    delivery_time_days: int
    attachments: list[str]
    tags: list[str]
    status: GigStatus
    created_at: datetime
    updated_at: datetime


class ProposalCreate(CamelModel):
    gig_id: str
    message: str = Field(min_length=10)
    amount: Decimal = Field(gt=0)
    delivery_time_days: int = Field(gt=0)


class ProposalAcceptRequest(CamelModel):
    proposal_id: str


class ProposalRead(CamelModel):
    id: str
    gig_id: str
    proposer_id: str
    message: str
    amount: float
    delivery_time_days: int
    status: ProposalStatus
    created_at: datetime
    updated_at: datetime


class OrderRead(CamelModel):
    id: str
    gig_id: str
    buyer_id: str
    seller_id: str
    proposal_id: str | None = None
    amount: float
    status: OrderStatus
    escrow_released: bool
    due_date: datetime | None = None
    created_at: datetime


class WalletSummaryRead(CamelModel):
    wallet_id: str
    balance: float
    holds: float
    available: float


class TransactionRead(CamelModel):
    id: str
    wallet_id: str
    order_id: str | None = None
    amount: float
    type: TransactionType
    status: TransactionStatus
    reference: str
    created_at: datetime


# Attendance


class AttendanceSessionCreate(CamelModel):
    course_id: str
    scheduled_at: datetime
    mode: AttendanceMode
    status: AttendanceSessionStatus | None = None
    metadata: dict[str, Any] | None = None


class AttendanceSessionRead(CamelModel):
    id: str
    course_id: str
    lecturer_id: str
    scheduled_at: datetime
    mode: AttendanceMode
    status: AttendanceSessionStatus
    qr_token: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class QRCheckInRequest(CamelModel):
    session_id: str
    token: str = Field(min_length=1)
    location: dict[str, Any] | None = None
    device_info: dict[str, Any] | None = None


class AttendanceRecordRead(CamelModel):
    id: str
    session_id: str
    student_id: str
    status: AttendanceStatus
    mode: AttendanceMode
    checked_in_at: datetime
    location: dict[str, Any] | None = None
    device_info: dict[str, Any] | None = None


# Exam integrity


class ExamCreate(CamelModel):
    title: str = Field(min_length=3, max_length=255)
    course_code: str = Field(min_length=2, max_length=32)
    questions: list[dict[str, Any]] = Field(default_factory=list)
    duration: int = Field(gt=0)
    allowed_attempts: int = Field(default=1, ge=1)
    start_date: datetime
    end_date: datetime
    access_code: str = Field(min_length=1, max_length=64)


class ExamStatusUpdate(CamelModel):
    status: ExamIntegrityStatus
    review_notes: str | None = None
    rejection_reason: str | None = None


class ExamRead(CamelModel):
    id: str
    lecturer_id: str
    title: str
    course_code: str
    questions: list[dict[str, Any]]
    duration: int
    allowed_attempts: int
    start_date: datetime
    end_date: datetime
    status: ExamIntegrityStatus
    review_notes: str | None = None
    rejection_reason: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime


class AttemptCreate(CamelModel):
    exam_id: str


class AttemptUpdate(CamelModel):
    status: ExamAttemptStatus | None = None
    score: float | None = None
    answers: dict[str, Any] | None = None
    end_time: datetime | None = None


class AttemptRead(CamelModel):
    id: str
    exam_id: str
    student_id: str
    attempt_number: int
    status: ExamAttemptStatus
    score: float | None = None
    answers: dict[str, Any] | None = None
    start_time: datetime
    end_time: datetime | None = None


class NotificationRead(CamelModel):
    id: str
    user_id: str
    exam_id: str
    message: str
    seen: bool
    created_at: datetime


# Academic sessions


class AcademicSessionCreate(CamelModel):
    name: str = Field(min_length=2, max_length=255)
    start_date: datetime
    end_date: datetime
    status: AcademicSessionStatus | None = None
    requires_payment: bool | None = None
    payment_amount: Decimal | None = Field(default=None, ge=0)
    payment_currency: str | None = Field(default=None, min_length=2, max_length=8)
    is_active: bool | None = None
    registration_open: bool | None = None


class AcademicSessionUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: AcademicSessionStatus | None = None
    requires_payment: bool | None = None
    payment_amount: Decimal | None = Field(default=None, ge=0)
    payment_currency: str | None = Field(default=None, min_length=2, max_length=8)
    is_active: bool | None = None
    registration_open: bool | None = None


class AcademicSessionRead(CamelModel):
    id: str
    name: str
    start_date: datetime
    end_date: datetime
    status: AcademicSessionStatus
    requires_payment: bool
    payment_amount: float | None = None
    payment_currency: str | None = None
    is_active: bool
    registration_open: bool
    created_at: datetime


class SessionRegistrationRequest(CamelModel):
    session_id: str
    payment_reference: str | None = Field(default=None, max_length=255)


class RegistrationDecisionRequest(CamelModel):
    notes: str | None = None


class SessionRegistrationRead(CamelModel):
    id: str
    student_id: str
    session_id: str
    status: RegistrationStatus
    approval_type: ApprovalType
    payment_reference: str | None = None
    payment_verified: bool
    approved_by: str | None = None
    approved_at: datetime | None = None
    notes: str | None = None
    created_at: datetime
    session: AcademicSessionRead | None = None
