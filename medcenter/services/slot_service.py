import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.core.clock import clinic_today, local_to_utc, utc_naive_now
from medcenter.core.config import settings
from medcenter.models.doctor import Doctor
from medcenter.models.leave import LeaveKind
from medcenter.models.reservation import ReservationStatus
from medcenter.services.doctor_service import get_doctor
from medcenter.services.leave_service import get_leaves
from medcenter.services.reservation_service import list_blocking_reservations
from medcenter.services.results import ErrorType, ServiceResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    doctor_id: int
    date: date
    start_time: time  # clinic wall clock
    end_time: time
    start_utc: datetime  # naive UTC
    end_utc: datetime


def build_slot_grid(doctor: Doctor, d: date) -> list[Slot]:
    """Every fixed-duration slot of the doctor's working hours on d, in order.

    Days outside the doctor's working days have no slots, and a trailing slot that
    would run past work_end is not produced.
    """
    if d.isoweekday() not in doctor.weekdays or doctor.slot_duration_minutes <= 0:
        return []
    slots: list[Slot] = []
    delta = timedelta(minutes=doctor.slot_duration_minutes)
    current = datetime.combine(d, doctor.work_start)
    end = datetime.combine(d, doctor.work_end)
    while current + delta <= end:
        slot_end = current + delta
        slots.append(
            Slot(
                doctor_id=doctor.id,
                date=d,
                start_time=current.time(),
                end_time=slot_end.time(),
                start_utc=local_to_utc(d, current.time()),
                end_utc=local_to_utc(d, slot_end.time()),
            )
        )
        current = slot_end
    return slots


def apply_leave(slots: list[Slot], leave_kinds: set[LeaveKind], midday: time) -> list[Slot]:
    """Drop the slots covered by leave. Overlapping leave kinds: most restrictive wins."""
    if LeaveKind.FULL_DAY in leave_kinds or {LeaveKind.MORNING, LeaveKind.AFTERNOON} <= leave_kinds:
        return []
    if LeaveKind.MORNING in leave_kinds:
        slots = [s for s in slots if s.start_time >= midday]
    if LeaveKind.AFTERNOON in leave_kinds:
        slots = [s for s in slots if s.start_time < midday]
    return slots


async def available_slots(
    session: AsyncSession,
    doctor_id: int,
    d: date,
    *,
    now: datetime | None = None,
    exclude_holder: str | None = None,
) -> ServiceResult[list[Slot]]:
    """Bookable slots for a doctor on a clinic-local date.

    Slots on leave, slots with a CONFIRMED or unexpired HELD reservation, and slots
    that already started are left out. A hold owned by exclude_holder does not
    block, so a holder still sees the slot they are holding.
    Computed from the database on every call.
    """
    now = now or utc_naive_now()
    if d < clinic_today(now):
        return ServiceResult.fail(ErrorType.VALIDATION, "Cannot book appointments for past dates.")
    try:
        doctor = await get_doctor(session, doctor_id)
        if not doctor:
            return ServiceResult.fail(ErrorType.NOT_FOUND, "Doctor not found.")
        slots = build_slot_grid(doctor, d)
        if not slots:
            return ServiceResult.ok([], "Doctor does not work on this day.")
        leaves = await get_leaves(session, doctor_id, d)
        slots = apply_leave(slots, {leave.leave_kind for leave in leaves}, settings.midday_boundary)
        if not slots:
            return ServiceResult.ok([], "Full day on leave.")
        blocking = await list_blocking_reservations(
            session, doctor_id, slots[0].start_utc, slots[-1].end_utc, now
        )
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Fetching available slots failed: %s", e)
        return ServiceResult.fail(
            ErrorType.UNEXPECTED, "An unexpected error occurred while fetching available slots."
        )
    taken = {
        r.slot_start_utc
        for r in blocking
        if not (
            exclude_holder
            and r.holder_identity == exclude_holder
            and r.status == ReservationStatus.HELD
        )
    }
    available = [s for s in slots if s.start_utc not in taken and s.start_utc > now]
    return ServiceResult.ok(available, "Available slots fetched successfully.")
