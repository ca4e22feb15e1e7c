"""Reservation workflow: guest and signed-in paths, continuation tokens, races."""
import asyncio
from datetime import date, datetime, time, timedelta

import pytest

from medcenter.core.config import settings
from medcenter.models.leave import LeaveKind
from medcenter.models.reservation import PatientDetails, ReservationStatus
from medcenter.models.user import UserRole
from medcenter.services import booking_service
from medcenter.services.booking_service import AuthenticatedRequester, GuestRequester
from medcenter.services.expiry_service import run_sweep
from medcenter.services.reservation_service import get_reservation
from medcenter.services.results import ErrorType
from medcenter.services.slot_service import available_slots

DAY = date(2025, 7, 10)
NOW = datetime(2025, 7, 9, 8, 0)
TEN = time(10, 0)
TEN_THIRTY = time(10, 30)
ELEVEN = time(11, 0)

alice = AuthenticatedRequester(user_id=1, name="Alice", email="alice@example.com")
bob = AuthenticatedRequester(user_id=2, name="Bob", email="bob@example.com")
admin = AuthenticatedRequester(user_id=99, role=UserRole.ADMIN)


def _guest(identifier=None, name="Guest Patient"):
    return GuestRequester(name=name, email="guest@example.com", phone="555-0100", guest_identifier=identifier)


async def _reserve(session, doctor, requester, start=TEN, end=TEN_THIRTY, *, d=DAY, now=NOW):
    result = await booking_service.reserve(session, doctor.id, d, start, end, requester, now=now)
    if result.success:
        await session.commit()
    return result


def _starts(result):
    return [s.start_time for s in result.data]


@pytest.mark.asyncio
async def test_guest_booking_walkthrough(session, doctor):
    before = await available_slots(session, doctor.id, DAY, now=NOW)
    assert len(before.data) == 16

    first = await _reserve(session, doctor, _guest())
    assert first.success
    token = first.data
    assert token.appointment_id
    assert token.guest_identifier

    held = await get_reservation(session, token.appointment_id)
    assert held.status == ReservationStatus.HELD
    assert held.holder_identity == f"guest:{token.guest_identifier}"
    assert held.patient_name == "Guest Patient"

    second = await _reserve(session, doctor, _guest(name="Someone Else"), now=NOW + timedelta(minutes=1))
    assert second.error_type == ErrorType.SLOT_UNAVAILABLE
    assert second.context == {"doctor_id": doctor.id, "date": "2025-07-10"}

    during = await available_slots(session, doctor.id, DAY, now=NOW + timedelta(minutes=1))
    assert TEN not in _starts(during)
    assert len(during.data) == 15

    after_hold = NOW + timedelta(minutes=settings.reservation_hold_minutes, seconds=1)
    assert await run_sweep(session, now=after_hold) == 1
    await session.commit()
    assert (await get_reservation(session, token.appointment_id)).status == ReservationStatus.EXPIRED

    after = await available_slots(session, doctor.id, DAY, now=after_hold)
    assert TEN in _starts(after)
    assert len(after.data) == 16


@pytest.mark.asyncio
async def test_signed_in_reserve_is_idempotent(session, doctor):
    first = await _reserve(session, doctor, alice)
    again = await _reserve(session, doctor, alice, now=NOW + timedelta(minutes=3))
    assert first.success and again.success
    assert again.data.appointment_id == first.data.appointment_id
    assert first.data.guest_identifier is None

    reservation = await get_reservation(session, first.data.appointment_id)
    assert reservation.user_id == 1
    assert reservation.holder_identity == "user:1"
    assert reservation.expires_at == NOW + timedelta(minutes=3 + settings.reservation_hold_minutes)


@pytest.mark.asyncio
async def test_signed_in_user_changing_time_moves_the_hold(session, doctor):
    first = await _reserve(session, doctor, alice)
    moved = await _reserve(session, doctor, alice, ELEVEN, time(11, 30), now=NOW + timedelta(minutes=2))
    assert moved.success
    assert moved.data.appointment_id == first.data.appointment_id

    reservation = await get_reservation(session, first.data.appointment_id)
    assert reservation.slot_start_utc == datetime(2025, 7, 10, 11, 0)

    # the previous time is bookable by someone else again
    assert (await _reserve(session, doctor, bob, now=NOW + timedelta(minutes=2))).success


@pytest.mark.asyncio
async def test_guest_identifier_returns_to_same_hold(session, doctor):
    first = await _reserve(session, doctor, _guest())
    gid = first.data.guest_identifier

    same = await _reserve(session, doctor, _guest(gid), now=NOW + timedelta(minutes=1))
    assert same.data.appointment_id == first.data.appointment_id
    assert same.data.guest_identifier == gid

    moved = await _reserve(session, doctor, _guest(gid), TEN_THIRTY, ELEVEN, now=NOW + timedelta(minutes=2))
    assert moved.data.appointment_id == first.data.appointment_id
    slots = await available_slots(session, doctor.id, DAY, now=NOW + timedelta(minutes=2))
    assert TEN in _starts(slots)
    assert TEN_THIRTY not in _starts(slots)


@pytest.mark.asyncio
async def test_unknown_guest_identifier_gets_a_fresh_one(session, doctor):
    result = await _reserve(session, doctor, _guest("made-up"))
    assert result.success
    assert result.data.guest_identifier != "made-up"


@pytest.mark.asyncio
async def test_lapsed_guest_identifier_is_not_reused(session, doctor):
    first = await _reserve(session, doctor, _guest())
    gid = first.data.guest_identifier
    later = NOW + timedelta(hours=1)
    second = await _reserve(session, doctor, _guest(gid), now=later)
    assert second.success
    assert second.data.guest_identifier != gid
    assert second.data.appointment_id != first.data.appointment_id


@pytest.mark.asyncio
async def test_reserve_rejects_bad_windows(session, doctor):
    backwards = await _reserve(session, doctor, alice, TEN_THIRTY, TEN)
    assert backwards.error_type == ErrorType.VALIDATION

    misaligned = await _reserve(session, doctor, alice, time(10, 15), time(10, 45))
    assert misaligned.error_type == ErrorType.VALIDATION
    assert misaligned.context["doctor_id"] == doctor.id

    past = await _reserve(session, doctor, alice, d=date(2025, 7, 8))
    assert past.error_type == ErrorType.VALIDATION


@pytest.mark.asyncio
async def test_reserve_unknown_doctor(session, doctor):
    result = await booking_service.reserve(session, doctor.id + 50, DAY, TEN, TEN_THIRTY, alice, now=NOW)
    assert result.error_type == ErrorType.NOT_FOUND


@pytest.mark.asyncio
async def test_reserve_slot_on_leave(session, doctor, add_leave):
    await add_leave(doctor.id, DAY, LeaveKind.MORNING)
    result = await _reserve(session, doctor, alice)
    assert result.error_type == ErrorType.SLOT_UNAVAILABLE
    assert result.context["date"] == DAY.isoformat()

    afternoon = await _reserve(session, doctor, alice, time(14, 0), time(14, 30))
    assert afternoon.success


@pytest.mark.asyncio
async def test_reserve_started_slot_today(session, doctor):
    now = datetime(2025, 7, 10, 10, 5)
    result = await _reserve(session, doctor, alice, now=now)
    assert result.error_type == ErrorType.SLOT_UNAVAILABLE


@pytest.mark.asyncio
async def test_concurrent_reservations_for_one_slot(session_maker, doctor):
    async def attempt(requester):
        async with session_maker() as s:
            result = await booking_service.reserve(s, doctor.id, DAY, TEN, TEN_THIRTY, requester, now=NOW)
            if result.success:
                await s.commit()
            return result

    results = await asyncio.gather(attempt(alice), attempt(bob))
    winners = [r for r in results if r.success]
    losers = [r for r in results if not r.success]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].error_type == ErrorType.SLOT_UNAVAILABLE


@pytest.mark.asyncio
async def test_only_holder_or_admin_can_act(session, doctor):
    token = (await _reserve(session, doctor, alice)).data
    rid = token.appointment_id

    assert (await booking_service.get_reservation_for(session, rid, bob)).error_type == ErrorType.NOT_FOUND
    assert (await booking_service.release_reservation(session, rid, bob)).error_type == ErrorType.NOT_FOUND
    assert (await booking_service.get_reservation_for(session, rid, _guest())).error_type == ErrorType.NOT_FOUND
    assert (await booking_service.get_reservation_for(session, rid, admin)).success


@pytest.mark.asyncio
async def test_guest_details_then_confirm(session, doctor):
    token = (await _reserve(session, doctor, _guest())).data
    guest = _guest(token.guest_identifier)

    details = PatientDetails(patient_name="Kiran Das", patient_phone="555-0111", reason_for_visit="Follow-up")
    saved = await booking_service.save_patient_details(
        session, token.appointment_id, guest, details, now=NOW + timedelta(minutes=2)
    )
    assert saved.success
    await session.commit()

    confirmed = await booking_service.confirm_reservation(
        session, token.appointment_id, guest, now=NOW + timedelta(minutes=4)
    )
    assert confirmed.success
    assert confirmed.data.status == ReservationStatus.CONFIRMED
    assert confirmed.data.patient_name == "Kiran Das"


@pytest.mark.asyncio
async def test_guest_without_identifier_cannot_save_details(session, doctor):
    token = (await _reserve(session, doctor, _guest())).data
    details = PatientDetails(patient_name="Nobody")
    result = await booking_service.save_patient_details(session, token.appointment_id, _guest(), details, now=NOW)
    assert result.error_type == ErrorType.NOT_FOUND


@pytest.mark.asyncio
async def test_confirm_after_hold_lapses(session, doctor):
    token = (await _reserve(session, doctor, alice)).data
    result = await booking_service.confirm_reservation(
        session, token.appointment_id, alice, now=NOW + timedelta(minutes=30)
    )
    assert result.error_type == ErrorType.EXPIRED


@pytest.mark.asyncio
async def test_holder_releases_reservation(session, doctor):
    token = (await _reserve(session, doctor, alice)).data
    result = await booking_service.release_reservation(session, token.appointment_id, alice)
    await session.commit()
    assert result.data.status == ReservationStatus.CANCELLED
    assert (await _reserve(session, doctor, bob)).success


@pytest.mark.asyncio
async def test_guest_hold_claimed_after_sign_in(session, doctor):
    token = (await _reserve(session, doctor, _guest())).data
    result = await booking_service.claim_guest_reservation(session, token.guest_identifier, alice, now=NOW)
    await session.commit()
    assert result.success
    assert result.data.appointment_id == token.appointment_id

    reservation = await get_reservation(session, token.appointment_id)
    assert reservation.user_id == alice.user_id
    assert reservation.holder_identity == "user:1"

    # Alice re-selecting the same slot now refreshes the same hold
    again = await _reserve(session, doctor, alice, now=NOW + timedelta(minutes=1))
    assert again.data.appointment_id == token.appointment_id


@pytest.mark.asyncio
async def test_claim_guest_reservation_requires_identifier(session, doctor):
    result = await booking_service.claim_guest_reservation(session, "", alice, now=NOW)
    assert result.error_type == ErrorType.VALIDATION


@pytest.mark.asyncio
async def test_pending_hold_for_holder(session, doctor):
    token = (await _reserve(session, doctor, alice)).data
    result = await booking_service.pending_hold_for(session, doctor.id, alice, now=NOW + timedelta(minutes=1))
    assert result.success
    pending = result.data
    assert pending.appointment_id == token.appointment_id
    assert pending.date == DAY
    assert pending.start_time == TEN
    assert pending.end_time == TEN_THIRTY
    assert pending.expires_at == NOW + timedelta(minutes=settings.reservation_hold_minutes)


@pytest.mark.asyncio
async def test_pending_hold_for_others_is_empty(session, doctor):
    await _reserve(session, doctor, alice)
    for requester in (bob, _guest()):
        result = await booking_service.pending_hold_for(session, doctor.id, requester, now=NOW)
        assert result.success
        assert result.data is None


@pytest.mark.asyncio
async def test_pending_hold_for_guest_and_after_expiry(session, doctor):
    token = (await _reserve(session, doctor, _guest())).data
    guest = _guest(token.guest_identifier)

    found = await booking_service.pending_hold_for(session, doctor.id, guest, now=NOW)
    assert found.data.appointment_id == token.appointment_id

    lapsed = await booking_service.pending_hold_for(session, doctor.id, guest, now=NOW + timedelta(hours=1))
    assert lapsed.success
    assert lapsed.data is None


@pytest.mark.asyncio
async def test_pending_hold_in_clinic_time(session, doctor, monkeypatch):
    monkeypatch.setattr(settings, "app_timezone", "Asia/Kolkata")
    token = (await _reserve(session, doctor, alice)).data
    reservation = await get_reservation(session, token.appointment_id)
    assert reservation.slot_start_utc == datetime(2025, 7, 10, 4, 30)

    pending = (await booking_service.pending_hold_for(session, doctor.id, alice, now=NOW)).data
    assert pending.date == DAY
    assert pending.start_time == TEN


@pytest.mark.asyncio
async def test_details_after_lapse_hold_the_slot_again(session, doctor):
    token = (await _reserve(session, doctor, _guest())).data
    guest = _guest(token.guest_identifier)
    later = NOW + timedelta(minutes=30)

    details = PatientDetails(patient_name="Kiran Das", date_of_birth=date(1990, 1, 2))
    saved = await booking_service.save_patient_details(session, token.appointment_id, guest, details, now=later)
    await session.commit()
    assert saved.success
    assert saved.data.status == ReservationStatus.HELD
    assert saved.data.expires_at == later + timedelta(minutes=settings.reservation_hold_minutes)

    confirmed = await booking_service.confirm_reservation(
        session, token.appointment_id, guest, now=later + timedelta(minutes=1)
    )
    assert confirmed.success


@pytest.mark.asyncio
async def test_details_after_lapse_when_slot_was_taken(session, doctor):
    token = (await _reserve(session, doctor, alice)).data
    later = NOW + timedelta(minutes=30)
    assert (await _reserve(session, doctor, bob, now=later)).success

    result = await booking_service.save_patient_details(
        session, token.appointment_id, alice, PatientDetails(patient_name="Alice"), now=later
    )
    assert result.error_type == ErrorType.SLOT_UNAVAILABLE
