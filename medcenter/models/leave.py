from datetime import date
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class LeaveKind(str, Enum):
    FULL_DAY = "FULL_DAY"
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"


class DoctorLeave(SQLModel, table=True):
    __tablename__ = "doctor_leaves"
    __table_args__ = (UniqueConstraint("doctor_id", "leave_date", name="uq_doctor_leaves_doctor_date"),)
    id: int | None = Field(default=None, primary_key=True)
    doctor_id: int = Field(foreign_key="doctors.id", index=True)
    leave_date: date = Field(index=True)
    leave_kind: LeaveKind
    reason: str | None = None


class LeavePublic(SQLModel):
    leave_date: date
    leave_kind: LeaveKind
    reason: str | None = None
