from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.api.deps import get_requester, require_admin
from medcenter.api.errors import raise_for_result
from medcenter.api.schemas.booking import LeaveUpdateRequest, PendingReservationResponse
from medcenter.core.db import get_session
from medcenter.models.doctor import DoctorCreate, DoctorPublic
from medcenter.models.leave import LeavePublic
from medcenter.models.user import User
from medcenter.services.booking_service import Requester, pending_hold_for
from medcenter.services.doctor_service import create_doctor, get_doctor, list_doctors
from medcenter.services.expiry_service import run_sweep
from medcenter.services.leave_service import WORKING, list_leaves, update_doctor_leave

router = APIRouter(prefix="/doctors", tags=["doctors"])


@router.get("", response_model=list[DoctorPublic])
async def our_doctors(
    specialty: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> list[DoctorPublic]:
    doctors = await list_doctors(session, specialty=specialty)
    return [DoctorPublic.model_validate(d, from_attributes=True) for d in doctors]


@router.post("", response_model=DoctorPublic, status_code=status.HTTP_201_CREATED)
async def add_doctor(
    body: DoctorCreate,
    session: AsyncSession = Depends(get_session),
    _admin: User = Depends(require_admin),
) -> DoctorPublic:
    doctor = await create_doctor(session, body)
    return DoctorPublic.model_validate(doctor, from_attributes=True)


@router.get("/{doctor_id}", response_model=DoctorPublic)
async def doctor_profile(
    doctor_id: int,
    session: AsyncSession = Depends(get_session),
) -> DoctorPublic:
    """Doctor profile. The booking widget on this page reads availability next,
    so lapsed holds are swept here too."""
    await run_sweep(session)
    doctor = await get_doctor(session, doctor_id)
    if not doctor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")
    return DoctorPublic.model_validate(doctor, from_attributes=True)


@router.get("/{doctor_id}/pending-reservation", response_model=PendingReservationResponse | None)
async def pending_reservation(
    doctor_id: int,
    session: AsyncSession = Depends(get_session),
    requester: Requester = Depends(get_requester),
) -> PendingReservationResponse | None:
    """The caller's live hold with this doctor (bearer token or X-Guest-Identifier), or null."""
    result = await pending_hold_for(session, doctor_id, requester)
    raise_for_result(result)
    if result.data is None:
        return None
    return PendingReservationResponse(**asdict(result.data))


@router.get("/{doctor_id}/leaves", response_model=list[LeavePublic])
async def doctor_leaves(
    doctor_id: int,
    from_date: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> list[LeavePublic]:
    leaves = await list_leaves(session, doctor_id, from_date=from_date)
    return [LeavePublic.model_validate(leave, from_attributes=True) for leave in leaves]


@router.put("/{doctor_id}/leaves", response_model=list[LeavePublic])
async def update_leaves(
    doctor_id: int,
    body: LeaveUpdateRequest,
    session: AsyncSession = Depends(get_session),
    _admin: User = Depends(require_admin),
) -> list[LeavePublic]:
    changes = {c.date: c.leave_kind or WORKING for c in body.changes}
    result = await update_doctor_leave(session, doctor_id, changes, reason=body.reason)
    raise_for_result(result)
    return [LeavePublic.model_validate(leave, from_attributes=True) for leave in result.data]
