"""Reservation workflow: turns a slot selection into a held reservation.

This is the only module that tells signed-in users and guests apart. The requester
is always passed in explicitly; nothing here reads request or session state.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.core.clock import clinic_today, utc_naive_now, utc_to_local
from medcenter.core.config import settings
from medcenter.models.reservation import PatientContact, PatientDetails, PaymentMethod, Reservation
from medcenter.models.user import UserRole
from medcenter.services import reservation_service
from medcenter.services.doctor_service import get_doctor
from medcenter.services.results import ErrorType, ServiceResult
from medcenter.services.slot_service import available_slots, build_slot_grid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedRequester:
    user_id: int
    role: UserRole = UserRole.PATIENT
    name: str | None = None
    email: str | None = None

    @property
    def holder_identity(self) -> str:
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class GuestRequester:
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    # Returned by an earlier reserve call; lets a guest come back to their own hold
    guest_identifier: str | None = None


Requester = AuthenticatedRequester | GuestRequester


@dataclass(frozen=True)
class ContinuationToken:
    appointment_id: int
    guest_identifier: str | None = None


@dataclass(frozen=True)
class PendingHold:
    appointment_id: int
    date: date  # clinic-local
    start_time: time
    end_time: time
    expires_at: datetime  # naive UTC


def _guest_holder(guest_identifier: str) -> str:
    return f"guest:{guest_identifier}"


def holder_identity_for(requester: Requester) -> str | None:
    if isinstance(requester, AuthenticatedRequester):
        return requester.holder_identity
    if requester.guest_identifier:
        return _guest_holder(requester.guest_identifier)
    return None


def can_act_on(requester: Requester, reservation: Reservation) -> bool:
    if isinstance(requester, AuthenticatedRequester) and requester.role == UserRole.ADMIN:
        return True
    holder = holder_identity_for(requester)
    return holder is not None and reservation.holder_identity == holder


async def _resolve_guest(
    session: AsyncSession, requester: GuestRequester, doctor_id: int, now: datetime
) -> tuple[str, Reservation | None]:
    """(guest identifier to use, the guest's live hold with this doctor if any).

    A presented identifier is only reused while its hold is live and for the same
    doctor; otherwise a fresh one is minted. Identifiers are random, never derived
    from contact details.
    """
    if requester.guest_identifier:
        prior = await reservation_service.get_by_guest_identifier(session, requester.guest_identifier)
        if prior and prior.doctor_id == doctor_id and prior.is_live_hold(now):
            return requester.guest_identifier, prior
    return str(uuid4()), None


async def reserve(
    session: AsyncSession,
    doctor_id: int,
    d: date,
    start_time: time,
    end_time: time,
    requester: Requester,
    *,
    now: datetime | None = None,
) -> ServiceResult[ContinuationToken]:
    """Hold the slot [start_time, end_time) of doctor_id on d for the requester.

    On SLOT_UNAVAILABLE the result context still carries doctor_id and date so the
    caller can re-query the calendar without losing the selection.
    """
    now = now or utc_naive_now()
    context = {"doctor_id": doctor_id, "date": d.isoformat()}
    if end_time <= start_time:
        return ServiceResult.fail(ErrorType.VALIDATION, "Slot end must be after its start.", **context)
    if d < clinic_today(now):
        return ServiceResult.fail(ErrorType.VALIDATION, "Cannot book appointments for past dates.", **context)

    try:
        doctor = await get_doctor(session, doctor_id)
        if not doctor:
            return ServiceResult.fail(ErrorType.NOT_FOUND, "Doctor not found.", **context)
        requested = next(
            (s for s in build_slot_grid(doctor, d) if s.start_time == start_time and s.end_time == end_time),
            None,
        )
        if requested is None:
            return ServiceResult.fail(
                ErrorType.VALIDATION, "The requested time is not one of the doctor's slots.", **context
            )

        if isinstance(requester, AuthenticatedRequester):
            guest_identifier = None
            holder = requester.holder_identity
            existing = await reservation_service.find_active_hold(session, holder, doctor_id, now)
            contact = PatientContact(name=requester.name, email=requester.email)
        else:
            guest_identifier, existing = await _resolve_guest(session, requester, doctor_id, now)
            holder = _guest_holder(guest_identifier)
            contact = PatientContact(name=requester.name, email=requester.email, phone=requester.phone)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Reservation lookup failed: %s", e)
        return ServiceResult.fail(
            ErrorType.UNEXPECTED, "Failed to complete your reservation due to a server issue.", **context
        )

    calendar = await available_slots(session, doctor_id, d, now=now, exclude_holder=holder)
    if not calendar.success:
        return ServiceResult.fail(calendar.error_type, calendar.message, **context)
    if requested not in calendar.data:
        return ServiceResult.fail(
            ErrorType.SLOT_UNAVAILABLE, reservation_service.SLOT_TAKEN_MESSAGE, **context
        )

    hold_minutes = settings.reservation_hold_minutes
    if existing and existing.slot_start_utc != requested.start_utc:
        result = await reservation_service.move_hold(
            session, existing.id, requested.start_utc, requested.end_utc, hold_minutes, now=now
        )
    else:
        result = await reservation_service.claim(
            session,
            doctor_id,
            requested.start_utc,
            requested.end_utc,
            holder,
            hold_minutes,
            now=now,
            user_id=requester.user_id if isinstance(requester, AuthenticatedRequester) else None,
            guest_identifier=guest_identifier,
            contact=contact,
        )
    if not result.success:
        return ServiceResult.fail(result.error_type, result.message, **context)
    return ServiceResult.ok(
        ContinuationToken(appointment_id=result.data.id, guest_identifier=guest_identifier),
        result.message,
    )


async def get_reservation_for(
    session: AsyncSession, reservation_id: int, requester: Requester
) -> ServiceResult[Reservation]:
    """Reservations of other holders are reported as NOT_FOUND."""
    try:
        reservation = await reservation_service.get_reservation(session, reservation_id)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Fetching reservation %s failed: %s", reservation_id, e)
        return ServiceResult.fail(ErrorType.UNEXPECTED, "Could not load the reservation.")
    if not reservation or not can_act_on(requester, reservation):
        return ServiceResult.fail(ErrorType.NOT_FOUND, "Reservation not found.")
    return ServiceResult.ok(reservation)


async def save_patient_details(
    session: AsyncSession,
    reservation_id: int,
    requester: Requester,
    details: PatientDetails,
    *,
    now: datetime | None = None,
) -> ServiceResult[Reservation]:
    holder = holder_identity_for(requester)
    if holder is None:
        return ServiceResult.fail(ErrorType.NOT_FOUND, "Reservation not found.")
    return await reservation_service.update_patient_details(
        session, reservation_id, holder, details, now=now,
        hold_minutes=settings.reservation_hold_minutes,
    )


async def confirm_reservation(
    session: AsyncSession,
    reservation_id: int,
    requester: Requester,
    *,
    payment_method: PaymentMethod = PaymentMethod.ONLINE,
    now: datetime | None = None,
) -> ServiceResult[Reservation]:
    found = await get_reservation_for(session, reservation_id, requester)
    if not found.success:
        return found
    return await reservation_service.confirm(
        session, reservation_id, now=now, payment_method=payment_method
    )


async def release_reservation(
    session: AsyncSession, reservation_id: int, requester: Requester
) -> ServiceResult[Reservation]:
    found = await get_reservation_for(session, reservation_id, requester)
    if not found.success:
        return found
    return await reservation_service.release(session, reservation_id)


async def claim_guest_reservation(
    session: AsyncSession,
    guest_identifier: str,
    requester: AuthenticatedRequester,
    *,
    now: datetime | None = None,
) -> ServiceResult[ContinuationToken]:
    """Link a guest hold to the user who just signed in, so the booking can continue."""
    if not guest_identifier:
        return ServiceResult.fail(ErrorType.VALIDATION, "Guest identifier is missing.")
    result = await reservation_service.attach_guest_reservation(
        session, guest_identifier, requester.holder_identity, requester.user_id, now=now
    )
    if not result.success:
        return ServiceResult.fail(result.error_type, result.message)
    return ServiceResult.ok(ContinuationToken(appointment_id=result.data.id), result.message)


async def pending_hold_for(
    session: AsyncSession,
    doctor_id: int,
    requester: Requester,
    *,
    now: datetime | None = None,
) -> ServiceResult[PendingHold | None]:
    """The requester's live hold with this doctor, in clinic-local time.

    Succeeds with None when there is nothing in progress, so a profile page can
    show the selection without treating its absence as an error.
    """
    now = now or utc_naive_now()
    holder = holder_identity_for(requester)
    if holder is None:
        return ServiceResult.ok(None, "No reservation in progress.")
    try:
        hold = await reservation_service.find_active_hold(session, holder, doctor_id, now)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Pending reservation lookup failed: %s", e)
        return ServiceResult.fail(ErrorType.UNEXPECTED, "Could not load your pending reservation.")
    if hold is None:
        return ServiceResult.ok(None, "No reservation in progress.")
    start = utc_to_local(hold.slot_start_utc)
    end = utc_to_local(hold.slot_end_utc)
    return ServiceResult.ok(
        PendingHold(
            appointment_id=hold.id,
            date=start.date(),
            start_time=start.time(),
            end_time=end.time(),
            expires_at=hold.expires_at,
        )
    )
