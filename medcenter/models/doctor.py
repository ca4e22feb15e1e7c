from datetime import time

from pydantic import field_validator, model_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from medcenter.core.config import settings


def parse_weekdays(value: str) -> set[int]:
    """Parse "1,2,3" into {1, 2, 3}. Raises ValueError unless every item is an ISO weekday."""
    days = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or not 1 <= int(part) <= 7:
            raise ValueError(f"working_days must list ISO weekdays 1-7, got {part!r}")
        days.add(int(part))
    return days


class DoctorBase(SQLModel):
    name: str
    specialty: str
    specializations: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    brief: str | None = None
    # Working-hour template: ISO weekdays (1 = Monday) and local wall-clock hours
    working_days: str = "1,2,3,4,5"
    work_start: time = Field(default_factory=lambda: settings.default_work_start)
    work_end: time = Field(default_factory=lambda: settings.default_work_end)
    slot_duration_minutes: int = Field(default_factory=lambda: settings.default_slot_duration_minutes)

    @field_validator("working_days")
    @classmethod
    def _normalize_working_days(cls, v: str) -> str:
        return ",".join(str(d) for d in sorted(parse_weekdays(v)))

    @model_validator(mode="after")
    def _check_hours(self):
        if self.slot_duration_minutes <= 0:
            raise ValueError("slot_duration_minutes must be positive")
        if self.work_start >= self.work_end:
            raise ValueError("work_start must be before work_end")
        return self


class Doctor(DoctorBase, table=True):
    __tablename__ = "doctors"
    id: int | None = Field(default=None, primary_key=True)
    is_active: bool = Field(default=True, index=True)

    @property
    def weekdays(self) -> set[int]:
        return parse_weekdays(self.working_days)


class DoctorCreate(DoctorBase):
    pass


class DoctorPublic(DoctorBase):
    id: int
