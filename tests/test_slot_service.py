"""Slot calendar: grid, leave, reservations and date validation."""
from datetime import date, datetime, time, timedelta

import pytest

from medcenter.core.config import settings
from medcenter.models.doctor import Doctor
from medcenter.models.leave import LeaveKind
from medcenter.models.reservation import Reservation, ReservationStatus
from medcenter.services.results import ErrorType
from medcenter.services.slot_service import apply_leave, available_slots, build_slot_grid

DAY = date(2025, 7, 10)
NOW = datetime(2025, 7, 9, 8, 0)


def _starts(slots) -> list[str]:
    return [s.start_time.strftime("%H:%M") for s in slots]


def _doctor(**overrides) -> Doctor:
    fields = dict(
        id=1,
        name="Dr. Test",
        specialty="General",
        working_days="1,2,3,4,5",
        work_start=time(9, 0),
        work_end=time(17, 0),
        slot_duration_minutes=30,
    )
    fields.update(overrides)
    return Doctor(**fields)


def test_grid_covers_working_hours():
    slots = build_slot_grid(_doctor(), DAY)
    assert len(slots) == 16
    assert slots[0].start_time == time(9, 0)
    assert slots[-1].end_time == time(17, 0)
    assert all(b.start_utc == a.end_utc for a, b in zip(slots, slots[1:]))


def test_grid_empty_on_non_working_day():
    saturday = date(2025, 7, 12)
    assert build_slot_grid(_doctor(), saturday) == []


def test_grid_drops_trailing_partial_slot():
    slots = build_slot_grid(_doctor(work_end=time(17, 15)), DAY)
    assert slots[-1].end_time == time(17, 0)


def test_grid_converts_clinic_time_to_utc(monkeypatch):
    monkeypatch.setattr(settings, "app_timezone", "Asia/Kolkata")
    first = build_slot_grid(_doctor(), DAY)[0]
    assert first.start_time == time(9, 0)
    assert first.start_utc == datetime(2025, 7, 10, 3, 30)


def test_overlapping_leave_kinds_most_restrictive_wins():
    slots = build_slot_grid(_doctor(), DAY)
    assert apply_leave(slots, {LeaveKind.MORNING, LeaveKind.AFTERNOON}, time(13, 0)) == []
    assert apply_leave(slots, {LeaveKind.MORNING, LeaveKind.FULL_DAY}, time(13, 0)) == []


@pytest.mark.asyncio
async def test_available_slots_full_day(session, doctor):
    result = await available_slots(session, doctor.id, DAY, now=NOW)
    assert result.success
    assert len(result.data) == 16


@pytest.mark.asyncio
async def test_full_day_leave_returns_nothing(session, doctor, add_leave):
    await add_leave(doctor.id, DAY, LeaveKind.FULL_DAY)
    result = await available_slots(session, doctor.id, DAY, now=NOW)
    assert result.success
    assert result.data == []


@pytest.mark.asyncio
async def test_morning_leave_keeps_afternoon(session, doctor, add_leave):
    await add_leave(doctor.id, DAY, LeaveKind.MORNING)
    result = await available_slots(session, doctor.id, DAY, now=NOW)
    starts = _starts(result.data)
    assert starts[0] == "13:00"
    assert len(starts) == 8
    assert all(s.start_time >= time(13, 0) for s in result.data)


@pytest.mark.asyncio
async def test_afternoon_leave_keeps_morning(session, doctor, add_leave):
    await add_leave(doctor.id, DAY, LeaveKind.AFTERNOON)
    result = await available_slots(session, doctor.id, DAY, now=NOW)
    starts = _starts(result.data)
    assert starts[-1] == "12:30"
    assert len(starts) == 8


@pytest.mark.asyncio
async def test_past_date_is_rejected(session, doctor):
    result = await available_slots(session, doctor.id, DAY - timedelta(days=2), now=NOW)
    assert result.error_type == ErrorType.VALIDATION
    assert result.data is None


@pytest.mark.asyncio
async def test_unknown_doctor(session, doctor):
    result = await available_slots(session, doctor.id + 100, DAY, now=NOW)
    assert result.error_type == ErrorType.NOT_FOUND


@pytest.mark.asyncio
async def test_inactive_doctor_is_not_found(session, doctor):
    doctor.is_active = False
    session.add(doctor)
    await session.commit()
    result = await available_slots(session, doctor.id, DAY, now=NOW)
    assert result.error_type == ErrorType.NOT_FOUND


async def _insert(session, doctor_id, start_local: time, status, expires_at, holder="user:9"):
    start = datetime.combine(DAY, start_local)
    row = Reservation(
        doctor_id=doctor_id,
        slot_start_utc=start,
        slot_end_utc=start + timedelta(minutes=30),
        holder_identity=holder,
        status=status,
        expires_at=expires_at,
    )
    session.add(row)
    await session.commit()
    return row


@pytest.mark.asyncio
async def test_blocking_reservations_are_subtracted(session, doctor):
    await _insert(session, doctor.id, time(9, 0), ReservationStatus.CONFIRMED, NOW)
    await _insert(session, doctor.id, time(9, 30), ReservationStatus.HELD, NOW + timedelta(minutes=10))
    await _insert(session, doctor.id, time(10, 0), ReservationStatus.CANCELLED, NOW + timedelta(minutes=10))
    result = await available_slots(session, doctor.id, DAY, now=NOW)
    starts = _starts(result.data)
    assert "09:00" not in starts
    assert "09:30" not in starts
    assert "10:00" in starts
    assert len(starts) == 14


@pytest.mark.asyncio
async def test_lapsed_hold_does_not_block_even_before_sweep(session, doctor):
    await _insert(session, doctor.id, time(11, 0), ReservationStatus.HELD, NOW - timedelta(seconds=1))
    result = await available_slots(session, doctor.id, DAY, now=NOW)
    assert "11:00" in _starts(result.data)


@pytest.mark.asyncio
async def test_own_hold_stays_visible_to_holder(session, doctor):
    await _insert(session, doctor.id, time(11, 0), ReservationStatus.HELD, NOW + timedelta(minutes=5), holder="user:7")
    mine = await available_slots(session, doctor.id, DAY, now=NOW, exclude_holder="user:7")
    theirs = await available_slots(session, doctor.id, DAY, now=NOW, exclude_holder="user:8")
    assert "11:00" in _starts(mine.data)
    assert "11:00" not in _starts(theirs.data)


@pytest.mark.asyncio
async def test_slots_already_started_today_are_hidden(session, doctor):
    now = datetime(2025, 7, 10, 12, 10)
    result = await available_slots(session, doctor.id, DAY, now=now)
    assert _starts(result.data)[0] == "12:30"
