from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from medcenter.models.reservation import Reservation, ReservationStatus
from medcenter.services import expiry_service
from medcenter.services.expiry_service import run_sweep

NOW = datetime(2025, 7, 9, 8, 0)
SLOT = datetime(2025, 7, 10, 9, 0)


def _hold(doctor_id, offset_slots, expires_at, status=ReservationStatus.HELD):
    start = SLOT + timedelta(minutes=30 * offset_slots)
    return Reservation(
        doctor_id=doctor_id,
        slot_start_utc=start,
        slot_end_utc=start + timedelta(minutes=30),
        holder_identity=f"guest:{offset_slots}",
        status=status,
        expires_at=expires_at,
    )


@pytest.mark.asyncio
async def test_sweep_releases_lapsed_holds(session, doctor):
    session.add_all(
        [
            _hold(doctor.id, 0, NOW - timedelta(minutes=5)),
            _hold(doctor.id, 1, NOW),
            _hold(doctor.id, 2, NOW + timedelta(minutes=5)),
            _hold(doctor.id, 3, NOW - timedelta(minutes=5), ReservationStatus.CONFIRMED),
        ]
    )
    await session.commit()

    assert await run_sweep(session, now=NOW) == 2
    await session.commit()
    # nothing left to do on a second pass
    assert await run_sweep(session, now=NOW) == 0


@pytest.mark.asyncio
async def test_sweep_with_nothing_to_release(session, doctor):
    assert await run_sweep(session, now=NOW) == 0


@pytest.mark.asyncio
async def test_sweep_failure_is_logged_not_raised(session, monkeypatch, caplog):
    failing = AsyncMock(side_effect=OperationalError("UPDATE reservations", {}, Exception("db down")))
    monkeypatch.setattr(expiry_service, "sweep_expired", failing)

    assert await run_sweep(session, now=NOW) == 0
    assert "Reservation sweep failed" in caplog.text
