from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.api.deps import get_current_user, get_optional_user, get_requester, requester_for
from medcenter.api.errors import raise_for_result
from medcenter.api.schemas.booking import (
    ClaimGuestRequest,
    ConfirmRequest,
    ContinuationTokenResponse,
    PatientDetailsRequest,
    ReserveRequest,
)
from medcenter.core.clock import to_naive_utc
from medcenter.core.db import get_session
from medcenter.models.reservation import PatientDetails, Reservation, ReservationPublic
from medcenter.models.user import User
from medcenter.services import booking_service
from medcenter.services.booking_service import GuestRequester, Requester
from medcenter.services.reservation_service import list_reservations_for_user

router = APIRouter(prefix="/reservations", tags=["reservations"])


def _to_public(r: Reservation) -> ReservationPublic:
    return ReservationPublic.model_validate(r, from_attributes=True)


@router.post("", response_model=ContinuationTokenResponse, status_code=status.HTTP_201_CREATED)
async def reserve_slot(
    body: ReserveRequest,
    session: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_optional_user),
) -> ContinuationTokenResponse:
    """Hold a slot. Signed-in users get an appointment id; guests also get the
    guest identifier they must send (X-Guest-Identifier) on the next steps."""
    if user:
        requester: Requester = requester_for(user)
    else:
        requester = GuestRequester(
            name=body.guest_name,
            email=body.guest_email,
            phone=body.guest_phone,
            guest_identifier=body.guest_identifier,
        )
    result = await booking_service.reserve(
        session, body.doctor_id, body.date, body.start_time, body.end_time, requester
    )
    raise_for_result(result)
    token = result.data
    return ContinuationTokenResponse(
        appointment_id=token.appointment_id,
        guest_identifier=token.guest_identifier,
        message=result.message,
    )


@router.get("", response_model=list[ReservationPublic])
async def list_my_reservations(
    from_date: datetime | None = Query(None, description="Only slots starting at/after this UTC instant"),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ReservationPublic]:
    from_utc = to_naive_utc(from_date) if from_date else None
    reservations = await list_reservations_for_user(session, current_user.id, from_utc=from_utc)
    return [_to_public(r) for r in reservations]


@router.post("/claim-guest", response_model=ContinuationTokenResponse)
async def claim_guest_reservation(
    body: ClaimGuestRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ContinuationTokenResponse:
    result = await booking_service.claim_guest_reservation(
        session, body.guest_identifier, requester_for(current_user)
    )
    raise_for_result(result)
    return ContinuationTokenResponse(appointment_id=result.data.appointment_id, message=result.message)


@router.get("/{reservation_id}", response_model=ReservationPublic)
async def get_reservation(
    reservation_id: int,
    session: AsyncSession = Depends(get_session),
    requester: Requester = Depends(get_requester),
) -> ReservationPublic:
    result = await booking_service.get_reservation_for(session, reservation_id, requester)
    raise_for_result(result)
    return _to_public(result.data)


@router.patch("/{reservation_id}/patient-details", response_model=ReservationPublic)
async def save_patient_details(
    reservation_id: int,
    body: PatientDetailsRequest,
    session: AsyncSession = Depends(get_session),
    requester: Requester = Depends(get_requester),
) -> ReservationPublic:
    details = PatientDetails(**body.model_dump())
    result = await booking_service.save_patient_details(session, reservation_id, requester, details)
    raise_for_result(result)
    return _to_public(result.data)


@router.post("/{reservation_id}/confirm", response_model=ReservationPublic)
async def confirm_reservation(
    reservation_id: int,
    body: ConfirmRequest | None = None,
    session: AsyncSession = Depends(get_session),
    requester: Requester = Depends(get_requester),
) -> ReservationPublic:
    """Called once patient details and payment are done; turns the hold into a booking."""
    body = body or ConfirmRequest()
    result = await booking_service.confirm_reservation(
        session, reservation_id, requester, payment_method=body.payment_method
    )
    raise_for_result(result)
    return _to_public(result.data)


@router.delete("/{reservation_id}", response_model=ReservationPublic)
async def release_reservation(
    reservation_id: int,
    session: AsyncSession = Depends(get_session),
    requester: Requester = Depends(get_requester),
) -> ReservationPublic:
    result = await booking_service.release_reservation(session, reservation_id, requester)
    raise_for_result(result)
    return _to_public(result.data)
