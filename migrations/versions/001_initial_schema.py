"""Initial schema: users, refresh_tokens, doctors, doctor_leaves, reservations.

Revision ID: 001_initial
Revises:
Create Date: 2025-07-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("PATIENT", "DOCTOR", "ADMIN", name="userrole")
leave_kind = sa.Enum("FULL_DAY", "MORNING", "AFTERNOON", name="leavekind")
reservation_status = sa.Enum("HELD", "CONFIRMED", "EXPIRED", "CANCELLED", name="reservationstatus")
payment_method = sa.Enum("ONLINE", "CASH", name="paymentmethod")
patient_type = sa.Enum("MYSELF", "SOMEONE_ELSE", name="patienttype")

ACTIVE_SLOT = sa.text("status IN ('HELD', 'CONFIRMED')")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("role", user_role, nullable=False, server_default="PATIENT"),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("jti", sa.String(), nullable=False),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default="false"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_refresh_tokens_user_id"), "refresh_tokens", ["user_id"], unique=False)
    op.create_index(op.f("ix_refresh_tokens_jti"), "refresh_tokens", ["jti"], unique=True)
    op.create_index(op.f("ix_refresh_tokens_expires_at"), "refresh_tokens", ["expires_at"], unique=False)

    op.create_table(
        "doctors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("specialty", sa.String(), nullable=False),
        sa.Column("specializations", sa.JSON(), nullable=False),
        sa.Column("brief", sa.String(), nullable=True),
        sa.Column("working_days", sa.String(), nullable=False, server_default="1,2,3,4,5"),
        sa.Column("work_start", sa.Time(), nullable=False),
        sa.Column("work_end", sa.Time(), nullable=False),
        sa.Column("slot_duration_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_doctors_is_active"), "doctors", ["is_active"], unique=False)

    op.create_table(
        "doctor_leaves",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("doctor_id", sa.Integer(), nullable=False),
        sa.Column("leave_date", sa.Date(), nullable=False),
        sa.Column("leave_kind", leave_kind, nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("doctor_id", "leave_date", name="uq_doctor_leaves_doctor_date"),
    )
    op.create_index(op.f("ix_doctor_leaves_doctor_id"), "doctor_leaves", ["doctor_id"], unique=False)
    op.create_index(op.f("ix_doctor_leaves_leave_date"), "doctor_leaves", ["leave_date"], unique=False)

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("doctor_id", sa.Integer(), nullable=False),
        sa.Column("slot_start_utc", sa.DateTime(), nullable=False),
        sa.Column("slot_end_utc", sa.DateTime(), nullable=False),
        sa.Column("holder_identity", sa.String(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("guest_identifier", sa.String(), nullable=True),
        sa.Column("patient_name", sa.String(), nullable=True),
        sa.Column("patient_email", sa.String(), nullable=True),
        sa.Column("patient_phone", sa.String(), nullable=True),
        sa.Column("patient_type", patient_type, nullable=False, server_default="MYSELF"),
        sa.Column("patient_relation", sa.String(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("reason_for_visit", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("status", reservation_status, nullable=False),
        sa.Column("payment_method", payment_method, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_reservations_doctor_id"), "reservations", ["doctor_id"], unique=False)
    op.create_index(op.f("ix_reservations_slot_start_utc"), "reservations", ["slot_start_utc"], unique=False)
    op.create_index(op.f("ix_reservations_holder_identity"), "reservations", ["holder_identity"], unique=False)
    op.create_index(op.f("ix_reservations_user_id"), "reservations", ["user_id"], unique=False)
    op.create_index(op.f("ix_reservations_guest_identifier"), "reservations", ["guest_identifier"], unique=True)
    op.create_index(op.f("ix_reservations_status"), "reservations", ["status"], unique=False)
    op.create_index(op.f("ix_reservations_expires_at"), "reservations", ["expires_at"], unique=False)
    # One HELD/CONFIRMED reservation per doctor slot
    op.create_index(
        "uq_reservations_active_slot",
        "reservations",
        ["doctor_id", "slot_start_utc"],
        unique=True,
        postgresql_where=ACTIVE_SLOT,
        sqlite_where=ACTIVE_SLOT,
    )


def downgrade() -> None:
    op.drop_index("uq_reservations_active_slot", table_name="reservations")
    for column in ("expires_at", "status", "guest_identifier", "user_id", "holder_identity", "slot_start_utc", "doctor_id"):
        op.drop_index(op.f(f"ix_reservations_{column}"), table_name="reservations")
    op.drop_table("reservations")
    op.drop_index(op.f("ix_doctor_leaves_leave_date"), table_name="doctor_leaves")
    op.drop_index(op.f("ix_doctor_leaves_doctor_id"), table_name="doctor_leaves")
    op.drop_table("doctor_leaves")
    op.drop_index(op.f("ix_doctors_is_active"), table_name="doctors")
    op.drop_table("doctors")
    op.drop_index(op.f("ix_refresh_tokens_expires_at"), table_name="refresh_tokens")
    op.drop_index(op.f("ix_refresh_tokens_jti"), table_name="refresh_tokens")
    op.drop_index(op.f("ix_refresh_tokens_user_id"), table_name="refresh_tokens")
    op.drop_table("refresh_tokens")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
    for enum in (patient_type, payment_method, reservation_status, leave_kind, user_role):
        enum.drop(op.get_bind(), checkfirst=True)
