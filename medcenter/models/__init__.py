from medcenter.models.user import User, UserCreate, UserPublic, UserRole
from medcenter.models.refresh_token import RefreshToken
from medcenter.models.doctor import Doctor, DoctorCreate, DoctorPublic
from medcenter.models.leave import DoctorLeave, LeaveKind, LeavePublic
from medcenter.models.reservation import (
    ACTIVE_STATUSES,
    PatientContact,
    PatientDetails,
    PatientType,
    PaymentMethod,
    Reservation,
    ReservationPublic,
    ReservationStatus,
)

__all__ = [
    "User",
    "UserCreate",
    "UserPublic",
    "UserRole",
    "RefreshToken",
    "Doctor",
    "DoctorCreate",
    "DoctorPublic",
    "DoctorLeave",
    "LeaveKind",
    "LeavePublic",
    "ACTIVE_STATUSES",
    "PatientContact",
    "PatientDetails",
    "PatientType",
    "PaymentMethod",
    "Reservation",
    "ReservationPublic",
    "ReservationStatus",
]
