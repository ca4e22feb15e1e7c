"""Reservation ledger: the durable record of slot holds and bookings.

The ledger knows nothing about users or guests; a holder is an opaque string.
Slot uniqueness is enforced by the uq_reservations_active_slot partial index, so a
lost race surfaces as an IntegrityError and is reported as SLOT_UNAVAILABLE.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.core.clock import utc_naive_now
from medcenter.models.reservation import (
    ACTIVE_STATUSES,
    PatientContact,
    PatientDetails,
    PatientType,
    PaymentMethod,
    Reservation,
    ReservationStatus,
)
from medcenter.services.results import ErrorType, ServiceResult

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This time slot is no longer available. Please select another time."


async def _unexpected(session: AsyncSession, operation: str, exc: Exception) -> ServiceResult:
    await session.rollback()
    logger.exception("Reservation %s failed: %s", operation, exc)
    return ServiceResult.fail(
        ErrorType.UNEXPECTED,
        "An unexpected error occurred while updating the reservation. Please try again later.",
    )


async def get_reservation(session: AsyncSession, reservation_id: int) -> Reservation | None:
    # populate_existing: bulk UPDATEs below bypass the identity map
    result = await session.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_guest_identifier(session: AsyncSession, guest_identifier: str) -> Reservation | None:
    result = await session.execute(
        select(Reservation).where(Reservation.guest_identifier == guest_identifier)
    )
    return result.scalar_one_or_none()


async def find_active_hold(
    session: AsyncSession, holder_identity: str, doctor_id: int, now: datetime
) -> Reservation | None:
    """Most recent unexpired HELD reservation of this holder with this doctor."""
    result = await session.execute(
        select(Reservation)
        .where(
            Reservation.holder_identity == holder_identity,
            Reservation.doctor_id == doctor_id,
            Reservation.status == ReservationStatus.HELD,
            Reservation.expires_at > now,
        )
        .order_by(Reservation.created_at.desc())
    )
    return result.scalars().first()


async def list_blocking_reservations(
    session: AsyncSession,
    doctor_id: int,
    start_inclusive: datetime,
    end_exclusive: datetime,
    now: datetime,
) -> list[Reservation]:
    """CONFIRMED rows and unexpired HELD rows starting in [start, end).

    A HELD row past expires_at no longer blocks its slot, whether or not the
    sweeper has marked it EXPIRED yet.
    """
    result = await session.execute(
        select(Reservation)
        .where(
            Reservation.doctor_id == doctor_id,
            Reservation.slot_start_utc >= start_inclusive,
            Reservation.slot_start_utc < end_exclusive,
            or_(
                Reservation.status == ReservationStatus.CONFIRMED,
                and_(
                    Reservation.status == ReservationStatus.HELD,
                    Reservation.expires_at > now,
                ),
            ),
        )
        .order_by(Reservation.slot_start_utc)
    )
    return list(result.scalars().all())


async def list_reservations_for_user(
    session: AsyncSession, user_id: int, from_utc: datetime | None = None
) -> list[Reservation]:
    q = select(Reservation).where(Reservation.user_id == user_id).order_by(Reservation.slot_start_utc)
    if from_utc:
        q = q.where(Reservation.slot_start_utc >= from_utc)
    result = await session.execute(q)
    return list(result.scalars().all())


async def _expire_stale_holds(
    session: AsyncSession, doctor_id: int, slot_start_utc: datetime, now: datetime
) -> int:
    """Mark lapsed HELD rows for one slot EXPIRED so they leave the unique index."""
    result = await session.execute(
        update(Reservation)
        .where(
            Reservation.doctor_id == doctor_id,
            Reservation.slot_start_utc == slot_start_utc,
            Reservation.status == ReservationStatus.HELD,
            Reservation.expires_at <= now,
        )
        .values(status=ReservationStatus.EXPIRED, updated_at=now)
    )
    return result.rowcount or 0


async def claim(
    session: AsyncSession,
    doctor_id: int,
    slot_start_utc: datetime,
    slot_end_utc: datetime,
    holder_identity: str,
    hold_minutes: int,
    *,
    now: datetime | None = None,
    user_id: int | None = None,
    guest_identifier: str | None = None,
    contact: PatientContact | None = None,
) -> ServiceResult[Reservation]:
    """Hold a slot for holder_identity until now + hold_minutes.

    Re-claiming a slot the same holder still holds refreshes the hold and returns
    the same reservation. Any other live HELD or CONFIRMED row for the slot makes
    the claim fail with SLOT_UNAVAILABLE.
    """
    now = now or utc_naive_now()
    expires_at = now + timedelta(minutes=hold_minutes)
    try:
        result = await session.execute(
            select(Reservation).where(
                Reservation.doctor_id == doctor_id,
                Reservation.slot_start_utc == slot_start_utc,
                Reservation.holder_identity == holder_identity,
                Reservation.status == ReservationStatus.HELD,
                Reservation.expires_at > now,
            )
        )
        existing = result.scalar_one_or_none()
        if existing:
            existing.expires_at = expires_at
            existing.updated_at = now
            session.add(existing)
            await session.flush()
            logger.debug("Refreshed hold %s until %s", existing.id, expires_at)
            return ServiceResult.ok(existing, "Your reservation hold has been refreshed.")

        await _expire_stale_holds(session, doctor_id, slot_start_utc, now)
        contact = contact or PatientContact()
        reservation = Reservation(
            doctor_id=doctor_id,
            slot_start_utc=slot_start_utc,
            slot_end_utc=slot_end_utc,
            holder_identity=holder_identity,
            user_id=user_id,
            guest_identifier=guest_identifier,
            patient_name=contact.name,
            patient_email=contact.email,
            patient_phone=contact.phone,
            status=ReservationStatus.HELD,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )
        session.add(reservation)
        await session.flush()
    except IntegrityError:
        await session.rollback()
        logger.info(
            "Slot conflict: doctor=%s start=%s holder=%s", doctor_id, slot_start_utc, holder_identity
        )
        return ServiceResult.fail(ErrorType.SLOT_UNAVAILABLE, SLOT_TAKEN_MESSAGE)
    except SQLAlchemyError as e:
        return await _unexpected(session, "claim", e)
    logger.info(
        "Reservation %s held: doctor=%s start=%s until %s",
        reservation.id, doctor_id, slot_start_utc, expires_at,
    )
    return ServiceResult.ok(reservation, "Appointment slot reserved successfully.")


async def move_hold(
    session: AsyncSession,
    reservation_id: int,
    slot_start_utc: datetime,
    slot_end_utc: datetime,
    hold_minutes: int,
    *,
    now: datetime | None = None,
) -> ServiceResult[Reservation]:
    """Point a live hold at another slot of the same doctor, keeping its id."""
    now = now or utc_naive_now()
    try:
        reservation = await get_reservation(session, reservation_id)
        if not reservation:
            return ServiceResult.fail(ErrorType.NOT_FOUND, "Reservation not found.")
        if reservation.status != ReservationStatus.HELD:
            return ServiceResult.fail(ErrorType.INVALID_STATE, "Only a held reservation can be moved.")
        if reservation.expires_at <= now:
            return ServiceResult.fail(ErrorType.EXPIRED, "Your reserved time slot has expired.")
        if reservation.slot_start_utc != slot_start_utc:
            await _expire_stale_holds(session, reservation.doctor_id, slot_start_utc, now)
        reservation.slot_start_utc = slot_start_utc
        reservation.slot_end_utc = slot_end_utc
        reservation.expires_at = now + timedelta(minutes=hold_minutes)
        reservation.updated_at = now
        session.add(reservation)
        await session.flush()
    except IntegrityError:
        await session.rollback()
        logger.info("Slot conflict moving reservation %s to %s", reservation_id, slot_start_utc)
        return ServiceResult.fail(ErrorType.SLOT_UNAVAILABLE, SLOT_TAKEN_MESSAGE)
    except SQLAlchemyError as e:
        return await _unexpected(session, "move", e)
    logger.info("Reservation %s moved to %s", reservation_id, slot_start_utc)
    return ServiceResult.ok(reservation, "Your appointment time has been successfully updated.")


async def confirm(
    session: AsyncSession,
    reservation_id: int,
    *,
    now: datetime | None = None,
    payment_method: PaymentMethod = PaymentMethod.ONLINE,
) -> ServiceResult[Reservation]:
    """HELD -> CONFIRMED, only while the hold is still live."""
    now = now or utc_naive_now()
    try:
        result = await session.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.HELD,
                Reservation.expires_at > now,
            )
            .values(status=ReservationStatus.CONFIRMED, payment_method=payment_method, updated_at=now)
        )
        reservation = await get_reservation(session, reservation_id)
        if result.rowcount == 1 and reservation:
            logger.info("Reservation %s confirmed (%s)", reservation_id, payment_method.value)
            return ServiceResult.ok(reservation, "Appointment confirmed.")
        if not reservation:
            return ServiceResult.fail(ErrorType.NOT_FOUND, "Reservation not found.")
        if reservation.status == ReservationStatus.HELD:
            reservation.status = ReservationStatus.EXPIRED
            reservation.updated_at = now
            session.add(reservation)
            await session.flush()
        if reservation.status == ReservationStatus.EXPIRED:
            return ServiceResult.fail(
                ErrorType.EXPIRED,
                "Your reserved time slot has expired. Please select a new appointment time.",
            )
        return ServiceResult.fail(
            ErrorType.INVALID_STATE,
            f"Reservation is {reservation.status.value.lower()} and cannot be confirmed.",
        )
    except SQLAlchemyError as e:
        return await _unexpected(session, "confirm", e)


async def release(session: AsyncSession, reservation_id: int) -> ServiceResult[Reservation]:
    """Cancel a HELD or CONFIRMED reservation. Already expired/cancelled: no-op."""
    now = utc_naive_now()
    try:
        result = await session.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status.in_(ACTIVE_STATUSES))
            .values(status=ReservationStatus.CANCELLED, updated_at=now)
        )
        reservation = await get_reservation(session, reservation_id)
    except SQLAlchemyError as e:
        return await _unexpected(session, "release", e)
    if not reservation:
        return ServiceResult.fail(ErrorType.NOT_FOUND, "Reservation not found.")
    if result.rowcount:
        logger.info("Reservation %s cancelled", reservation_id)
        return ServiceResult.ok(reservation, "Reservation cancelled.")
    return ServiceResult.ok(reservation, "Reservation was already released.")


async def sweep_expired(session: AsyncSession, now: datetime) -> int:
    """HELD -> EXPIRED for every hold with expires_at <= now. Returns the count."""
    result = await session.execute(
        update(Reservation)
        .where(Reservation.status == ReservationStatus.HELD, Reservation.expires_at <= now)
        .values(status=ReservationStatus.EXPIRED, updated_at=now)
    )
    await session.flush()
    return result.rowcount or 0


async def attach_guest_reservation(
    session: AsyncSession,
    guest_identifier: str,
    holder_identity: str,
    user_id: int,
    *,
    now: datetime | None = None,
) -> ServiceResult[Reservation]:
    """Hand an unexpired guest hold over to a user who signed in mid-booking."""
    now = now or utc_naive_now()
    try:
        result = await session.execute(
            select(Reservation).where(
                Reservation.guest_identifier == guest_identifier,
                Reservation.user_id.is_(None),
                Reservation.status == ReservationStatus.HELD,
                Reservation.expires_at > now,
            )
        )
        reservation = result.scalar_one_or_none()
        if not reservation:
            return ServiceResult.fail(ErrorType.NOT_FOUND, "Appointment not found or expired.")
        reservation.holder_identity = holder_identity
        reservation.user_id = user_id
        reservation.guest_identifier = None
        reservation.updated_at = now
        session.add(reservation)
        await session.flush()
    except SQLAlchemyError as e:
        return await _unexpected(session, "attach", e)
    logger.info("Guest reservation %s linked to user %s", reservation.id, user_id)
    return ServiceResult.ok(reservation, "Appointment has been successfully linked to your account.")


async def _revive_hold(
    session: AsyncSession, reservation: Reservation, hold_minutes: int, now: datetime
) -> ServiceResult[Reservation] | None:
    """Re-hold the slot of a lapsed hold if nobody else took it. None on success."""
    if reservation.slot_start_utc <= now:
        return ServiceResult.fail(
            ErrorType.EXPIRED,
            "Your appointment reservation for the selected slot has expired. Please select another slot.",
        )
    await _expire_stale_holds(session, reservation.doctor_id, reservation.slot_start_utc, now)
    await session.refresh(reservation)
    reservation.status = ReservationStatus.HELD
    reservation.expires_at = now + timedelta(minutes=hold_minutes)
    reservation.updated_at = now
    session.add(reservation)
    reservation_id = reservation.id
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        logger.info("Reservation %s lapsed and its slot was taken", reservation_id)
        return ServiceResult.fail(
            ErrorType.SLOT_UNAVAILABLE,
            "Your reservation lapsed and the slot has been taken. Please select another slot.",
        )
    logger.info("Reservation %s re-held until %s", reservation.id, reservation.expires_at)
    return None


async def update_patient_details(
    session: AsyncSession,
    reservation_id: int,
    holder_identity: str,
    details: PatientDetails,
    *,
    now: datetime | None = None,
    hold_minutes: int | None = None,
) -> ServiceResult[Reservation]:
    """Store who the appointment is for.

    With hold_minutes, a lapsed hold whose slot is still free is held again for
    that long and the details are saved; a taken slot gives SLOT_UNAVAILABLE.
    Without it a lapsed hold is reported as EXPIRED.
    """
    now = now or utc_naive_now()
    try:
        reservation = await get_reservation(session, reservation_id)
        if not reservation or reservation.holder_identity != holder_identity:
            return ServiceResult.fail(ErrorType.NOT_FOUND, "Reservation not found.")
        lapsed = reservation.status == ReservationStatus.EXPIRED or (
            reservation.status == ReservationStatus.HELD and reservation.expires_at <= now
        )
        if lapsed and hold_minutes is None:
            return ServiceResult.fail(
                ErrorType.EXPIRED,
                "Your appointment reservation for the selected slot has expired. Please select another slot.",
            )
        if lapsed:
            failed = await _revive_hold(session, reservation, hold_minutes, now)
            if failed:
                return failed
        elif reservation.status != ReservationStatus.HELD:
            return ServiceResult.fail(
                ErrorType.INVALID_STATE, "Patient details can only be changed before confirmation."
            )
        values = details.model_dump()
        if details.patient_type != PatientType.SOMEONE_ELSE:
            values["patient_relation"] = None
        for key, value in values.items():
            setattr(reservation, key, value)
        reservation.updated_at = now
        session.add(reservation)
        await session.flush()
    except SQLAlchemyError as e:
        return await _unexpected(session, "patient details", e)
    return ServiceResult.ok(reservation, "Appointment details saved successfully.")
