from datetime import date, datetime, time

from pydantic import BaseModel, EmailStr, model_validator

from medcenter.models.leave import LeaveKind
from medcenter.models.reservation import PatientType, PaymentMethod


class SlotInfo(BaseModel):
    start_time: time  # clinic wall clock, HH:MM
    end_time: time
    start_utc: datetime
    end_utc: datetime


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: str  # YYYY-MM-DD
    timezone: str
    slots: list[SlotInfo]
    message: str | None = None


class ReserveRequest(BaseModel):
    doctor_id: int
    date: date
    start_time: time
    end_time: time
    # Guests only; ignored when a bearer token is sent
    guest_name: str | None = None
    guest_email: EmailStr | None = None
    guest_phone: str | None = None
    guest_identifier: str | None = None


class ContinuationTokenResponse(BaseModel):
    appointment_id: int
    guest_identifier: str | None = None
    message: str | None = None


class PatientDetailsRequest(BaseModel):
    patient_name: str
    patient_phone: str | None = None
    patient_type: PatientType = PatientType.MYSELF
    patient_relation: str | None = None  # e.g. "Mother"; ignored for MYSELF
    date_of_birth: date | None = None
    reason_for_visit: str | None = None
    notes: str | None = None


class ConfirmRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.ONLINE


class ClaimGuestRequest(BaseModel):
    guest_identifier: str


class LeaveChangeItem(BaseModel):
    date: date
    leave_kind: LeaveKind | None = None  # None marks the day as working again


class LeaveUpdateRequest(BaseModel):
    changes: list[LeaveChangeItem]
    reason: str | None = None

    @model_validator(mode="after")
    def _unique_dates(self) -> "LeaveUpdateRequest":
        dates = [c.date for c in self.changes]
        if len(dates) != len(set(dates)):
            raise ValueError("Each date may appear only once")
        return self


class PendingReservationResponse(BaseModel):
    appointment_id: int
    date: date  # clinic-local
    start_time: time
    end_time: time
    expires_at: datetime
