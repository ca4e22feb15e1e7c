import logging
from datetime import date, datetime, time, timedelta
from typing import Literal

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.core.clock import local_to_utc, utc_naive_now
from medcenter.core.config import settings
from medcenter.models.leave import DoctorLeave, LeaveKind
from medcenter.models.reservation import Reservation
from medcenter.services.doctor_service import get_doctor
from medcenter.services.reservation_service import list_blocking_reservations
from medcenter.services.results import ErrorType, ServiceResult

logger = logging.getLogger(__name__)

WORKING = "WORKING"
LeaveChange = LeaveKind | Literal["WORKING"]


async def get_leaves(session: AsyncSession, doctor_id: int, d: date) -> list[DoctorLeave]:
    """Leave rows for one day. Normally zero or one; callers must tolerate more."""
    result = await session.execute(
        select(DoctorLeave).where(DoctorLeave.doctor_id == doctor_id, DoctorLeave.leave_date == d)
    )
    return list(result.scalars().all())


async def list_leaves(
    session: AsyncSession, doctor_id: int, from_date: date | None = None
) -> list[DoctorLeave]:
    q = select(DoctorLeave).where(DoctorLeave.doctor_id == doctor_id).order_by(DoctorLeave.leave_date)
    if from_date:
        q = q.where(DoctorLeave.leave_date >= from_date)
    result = await session.execute(q)
    return list(result.scalars().all())


def _leave_window(d: date, kind: LeaveKind) -> tuple[datetime, datetime]:
    """Naive-UTC [start, end) of the part of d a leave kind covers."""
    day_start = local_to_utc(d, time(0, 0))
    day_end = local_to_utc(d + timedelta(days=1), time(0, 0))
    midday = local_to_utc(d, settings.midday_boundary)
    if kind == LeaveKind.MORNING:
        return day_start, midday
    if kind == LeaveKind.AFTERNOON:
        return midday, day_end
    return day_start, day_end


async def find_leave_conflicts(
    session: AsyncSession, doctor_id: int, d: date, kind: LeaveKind, now: datetime
) -> list[Reservation]:
    start, end = _leave_window(d, kind)
    return await list_blocking_reservations(session, doctor_id, start, end, now)


async def update_doctor_leave(
    session: AsyncSession,
    doctor_id: int,
    changes: dict[date, LeaveChange],
    *,
    reason: str | None = None,
    now: datetime | None = None,
) -> ServiceResult[list[DoctorLeave]]:
    """Apply a batch of leave edits: a LeaveKind upserts the day, WORKING clears it.

    Nothing is written when any new leave would cover a booked or held slot; the
    conflicting dates are returned in the result context so they can be cancelled
    first.
    """
    now = now or utc_naive_now()
    if not changes:
        return ServiceResult.fail(ErrorType.VALIDATION, "No leave changes given.")
    try:
        if not await get_doctor(session, doctor_id):
            return ServiceResult.fail(ErrorType.NOT_FOUND, "Doctor not found.")

        conflicts: dict[str, list[int]] = {}
        for d, change in changes.items():
            if change == WORKING:
                continue
            clashing = await find_leave_conflicts(session, doctor_id, d, LeaveKind(change), now)
            if clashing:
                conflicts[d.isoformat()] = [r.id for r in clashing]
        if conflicts:
            logger.info("Leave update for doctor %s refused, conflicts on %s", doctor_id, sorted(conflicts))
            return ServiceResult.fail(
                ErrorType.INVALID_STATE,
                "Cannot mark leave. Existing appointments found. Please cancel them first.",
                conflicts=conflicts,
            )

        for d, change in changes.items():
            if change == WORKING:
                await session.execute(
                    delete(DoctorLeave).where(
                        DoctorLeave.doctor_id == doctor_id, DoctorLeave.leave_date == d
                    )
                )
                continue
            existing = await get_leaves(session, doctor_id, d)
            if existing:
                leave = existing[0]
                leave.leave_kind = LeaveKind(change)
                leave.reason = reason
                # drop legacy duplicates for the day
                for extra in existing[1:]:
                    await session.delete(extra)
            else:
                leave = DoctorLeave(doctor_id=doctor_id, leave_date=d, leave_kind=LeaveKind(change), reason=reason)
            session.add(leave)
        await session.flush()
        leaves = await list_leaves(session, doctor_id)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Updating leave for doctor %s failed: %s", doctor_id, e)
        return ServiceResult.fail(ErrorType.UNEXPECTED, "Failed to update leave due to a server issue.")
    logger.info("Leave updated for doctor %s: %d day(s)", doctor_id, len(changes))
    return ServiceResult.ok(leaves, "Leave updated successfully.")
