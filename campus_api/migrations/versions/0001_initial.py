"""Initial campus schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> postgresql.ENUM:
    return postgresql.ENUM(*values, name=name, create_type=False)


user_role = _enum("user_role", "ADMIN", "STUDENT", "LECTURER", "STAFF", "PARENT", "GUEST", "ALUMNI")
user_status = _enum("user_status", "ACTIVE", "INACTIVE", "SUSPENDED")
academic_session_status = _enum("academic_session_status", "PENDING", "ACTIVE", "CLOSED", "CANCELLED")
registration_status = _enum(
    "registration_status",
    "PENDING",
    "APPROVED",
    "REJECTED",
    "PAYMENT_PENDING",
    "PAYMENT_VERIFIED",
)
registration_approval_type = _enum("registration_approval_type", "ADMIN", "PAYMENT")
assignment_status = _enum("assignment_status", "ACTIVE", "INACTIVE")
identifier_pool = _enum("identifier_pool", "REGISTRATION_NUMBER", "STAFF_ID")
gig_status = _enum("gig_status", "DRAFT", "ACTIVE", "PAUSED", "COMPLETED", "ARCHIVED")
proposal_status = _enum("proposal_status", "PENDING", "ACCEPTED", "REJECTED", "WITHDRAWN")
order_status = _enum("order_status", "PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED", "DISPUTED")
transaction_type = _enum("transaction_type", "CREDIT", "DEBIT", "HOLD", "RELEASE")
transaction_status = _enum("transaction_status", "PENDING", "COMPLETED", "FAILED", "CANCELLED")
attendance_mode = _enum("attendance_mode", "QR", "BIOMETRIC", "DIGITAL")
attendance_session_status = _enum("attendance_session_status", "SCHEDULED", "OPEN", "CLOSED", "CANCELLED")
attendance_status = _enum("attendance_status", "PRESENT", "ABSENT", "LATE", "EXCUSED")
exam_integrity_status = _enum(
    "exam_integrity_status",
    "PENDING_ADMIN_REVIEW",
    "APPROVED",
    "DECLINED",
    "NEEDS_REVIEW",
)
exam_attempt_status = _enum("exam_attempt_status", "IN_PROGRESS", "COMPLETED", "SUBMITTED", "ABANDONED")
audit_actor_type = _enum("audit_actor_type", "USER", "ADMIN", "SYSTEM")

ALL_ENUMS = (
    user_role,
    user_status,
    academic_session_status,
    registration_status,
    registration_approval_type,
    assignment_status,
    identifier_pool,
    gig_status,
    proposal_status,
    order_status,
    transaction_type,
    transaction_status,
    attendance_mode,
    attendance_session_status,
    attendance_status,
    exam_integrity_status,
    exam_attempt_status,
    audit_actor_type,
)


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        )
    return columns


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "academic_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", academic_session_status, nullable=False),
        sa.Column("requires_payment", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("payment_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("payment_currency", sa.String(length=8), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("registration_open", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("status", user_status, nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("registration_number", sa.String(length=64), nullable=True),
        sa.Column("staff_id", sa.String(length=64), nullable=True),
        sa.Column("current_session_id", sa.String(length=36), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["current_session_id"], ["academic_sessions.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("registration_number", name="uq_users_registration_number"),
        sa.UniqueConstraint("staff_id", name="uq_users_staff_id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "student_session_registrations",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("status", registration_status, nullable=False),
        sa.Column("approval_type", registration_approval_type, nullable=False),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("payment_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("approved_by", sa.String(length=36), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["academic_sessions.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("student_id", "session_id", name="uq_student_session_registrations_student_session"),
    )
    op.create_index(
        "ix_student_session_registrations_student_id",
        "student_session_registrations",
        ["student_id"],
    )
    op.create_index(
        "ix_student_session_registrations_session_id",
        "student_session_registrations",
        ["session_id"],
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("level", sa.Integer(), nullable=True),
        sa.Column("session_id", sa.String(length=36), nullable=True),
        sa.Column("semester", sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(["session_id"], ["academic_sessions.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)

    op.create_table(
        "lecturer_course_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("lecturer_id", sa.String(length=36), nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("semester", sa.String(length=32), nullable=False),
        sa.Column("status", assignment_status, nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["academic_sessions.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_lecturer_course_assignments_lecturer_id",
        "lecturer_course_assignments",
        ["lecturer_id"],
    )

    op.create_table(
        "identifier_pool_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("pool", identifier_pool, nullable=False),
        sa.Column("value", sa.String(length=64), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used_by", sa.String(length=36), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint("pool", "value", name="uq_identifier_pool_entries_pool_value"),
    )
    op.create_index(
        "ix_identifier_pool_entries_pool_is_used",
        "identifier_pool_entries",
        ["pool", "is_used"],
    )

    op.create_table(
        "gigs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default=sa.text("'NGN'")),
        sa.Column("delivery_time_days", sa.Integer(), nullable=False),
        sa.Column(
            "attachments",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("status", gig_status, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_gigs_owner_id", "gigs", ["owner_id"])
    op.create_index("ix_gigs_category", "gigs", ["category"])
    op.create_index("ix_gigs_created_at", "gigs", ["created_at"])

    op.create_table(
        "gig_tags",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("gig_id", sa.String(length=36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tag", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["gig_id"], ["gigs.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_gig_tags_gig_id", "gig_tags", ["gig_id"])
    op.create_index("ix_gig_tags_tag", "gig_tags", ["tag"])

    op.create_table(
        "proposals",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("gig_id", sa.String(length=36), nullable=False),
        sa.Column("proposer_id", sa.String(length=36), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("delivery_time_days", sa.Integer(), nullable=False),
        sa.Column("status", proposal_status, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gig_id"], ["gigs.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_proposals_gig_id", "proposals", ["gig_id"])
    op.create_index("ix_proposals_proposer_id", "proposals", ["proposer_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("gig_id", sa.String(length=36), nullable=False),
        sa.Column("buyer_id", sa.String(length=36), nullable=False),
        sa.Column("seller_id", sa.String(length=36), nullable=False),
        sa.Column("proposal_id", sa.String(length=36), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", order_status, nullable=False),
        sa.Column("escrow_released", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gig_id"], ["gigs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("proposal_id", name="uq_orders_proposal_id"),
    )
    op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
    op.create_index("ix_orders_seller_id", "orders", ["seller_id"])

    op.create_table(
        "wallets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(updated=False),
        sa.UniqueConstraint("user_id", name="uq_wallets_user_id"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("wallet_id", sa.String(length=36), nullable=False),
        sa.Column("order_id", sa.String(length=36), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("status", transaction_status, nullable=False),
        sa.Column("reference", sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["wallet_id"], ["wallets.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("reference", name="uq_transactions_reference"),
    )
    op.create_index("ix_transactions_wallet_id", "transactions", ["wallet_id"])

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("lecturer_id", sa.String(length=36), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("mode", attendance_mode, nullable=False),
        sa.Column("status", attendance_session_status, nullable=False),
        sa.Column("qr_token", sa.String(length=128), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attendance_sessions_course_id", "attendance_sessions", ["course_id"])
    op.create_index("ix_attendance_sessions_lecturer_id", "attendance_sessions", ["lecturer_id"])

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("status", attendance_status, nullable=False),
        sa.Column("mode", attendance_mode, nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("device_info", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.ForeignKeyConstraint(["session_id"], ["attendance_sessions.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("session_id", "student_id", name="uq_attendance_records_session_student"),
    )
    op.create_index("ix_attendance_records_student_id", "attendance_records", ["student_id"])

    op.create_table(
        "exam_integrity",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("lecturer_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("course_code", sa.String(length=32), nullable=False),
        sa.Column(
            "questions",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("allowed_attempts", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("access_code", sa.String(length=64), nullable=False),
        sa.Column("status", exam_integrity_status, nullable=False),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=36), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lecturer_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_exam_integrity_lecturer_id", "exam_integrity", ["lecturer_id"])
    op.create_index("ix_exam_integrity_course_code", "exam_integrity", ["course_code"])

    op.create_table(
        "exam_attempts",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("exam_id", sa.String(length=36), nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("status", exam_attempt_status, nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("answers", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["exam_id"], ["exam_integrity.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "exam_id",
            "student_id",
            "attempt_number",
            name="uq_exam_attempts_exam_student_number",
        ),
    )
    op.create_index("ix_exam_attempts_student_id", "exam_attempts", ["student_id"])

    op.create_table(
        "exam_notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("exam_id", sa.String(length=36), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("seen", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["exam_id"], ["exam_integrity.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_exam_notifications_user_id", "exam_notifications", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("exam_notifications")
    op.drop_table("exam_attempts")
    op.drop_table("exam_integrity")
    op.drop_table("attendance_records")
    op.drop_table("attendance_sessions")
    op.drop_table("transactions")
    op.drop_table("wallets")
    op.drop_table("orders")
    op.drop_table("proposals")
    op.drop_table("gig_tags")
    op.drop_table("gigs")
    op.drop_table("identifier_pool_entries")
    op.drop_table("lecturer_course_assignments")
    op.drop_table("courses")
    op.drop_table("student_session_registrations")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("academic_sessions")

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
