from datetime import date, datetime
from enum import Enum

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from medcenter.core.clock import utc_naive_now


class ReservationStatus(str, Enum):
    HELD = "HELD"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    ONLINE = "ONLINE"
    CASH = "CASH"


class PatientType(str, Enum):
    MYSELF = "MYSELF"
    SOMEONE_ELSE = "SOMEONE_ELSE"


ACTIVE_STATUSES = (ReservationStatus.HELD, ReservationStatus.CONFIRMED)

# At most one HELD/CONFIRMED row per doctor slot; the database enforces it.
_ACTIVE_SLOT = text("status IN ('HELD', 'CONFIRMED')")


class Reservation(SQLModel, table=True):
    __tablename__ = "reservations"
    __table_args__ = (
        Index(
            "uq_reservations_active_slot",
            "doctor_id",
            "slot_start_utc",
            unique=True,
            postgresql_where=_ACTIVE_SLOT,
            sqlite_where=_ACTIVE_SLOT,
        ),
    )
    id: int | None = Field(default=None, primary_key=True)
    doctor_id: int = Field(foreign_key="doctors.id", index=True)
    slot_start_utc: datetime = Field(index=True)
    slot_end_utc: datetime
    holder_identity: str = Field(index=True)  # "user:<id>" or "guest:<uuid>"
    user_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    guest_identifier: str | None = Field(default=None, unique=True, index=True)
    patient_name: str | None = None
    patient_email: str | None = None
    patient_phone: str | None = None
    patient_type: PatientType = Field(default=PatientType.MYSELF)
    patient_relation: str | None = None  # only when booking for someone else
    date_of_birth: date | None = None
    reason_for_visit: str | None = None
    notes: str | None = None
    status: ReservationStatus = Field(default=ReservationStatus.HELD, index=True)
    payment_method: PaymentMethod | None = None
    created_at: datetime = Field(default_factory=utc_naive_now)
    updated_at: datetime = Field(default_factory=utc_naive_now)
    expires_at: datetime = Field(index=True)

    def is_live_hold(self, now: datetime) -> bool:
        return self.status == ReservationStatus.HELD and self.expires_at > now


class PatientContact(SQLModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class PatientDetails(SQLModel):
    patient_name: str
    patient_phone: str | None = None
    patient_type: PatientType = PatientType.MYSELF
    patient_relation: str | None = None
    date_of_birth: date | None = None
    reason_for_visit: str | None = None
    notes: str | None = None


class ReservationPublic(SQLModel):
    id: int
    doctor_id: int
    slot_start_utc: datetime
    slot_end_utc: datetime
    status: ReservationStatus
    patient_name: str | None = None
    patient_type: PatientType = PatientType.MYSELF
    patient_relation: str | None = None
    date_of_birth: date | None = None
    reason_for_visit: str | None = None
    payment_method: PaymentMethod | None = None
    created_at: datetime
    expires_at: datetime
