"""Opportunistic release of lapsed holds.

There is no timer: the sweep runs at startup and before availability reads (slot
listing, doctor profile). The calendar already ignores lapsed holds, so between
two sweeps a slot is never shown as taken because of an expired hold; the sweep
only moves those rows to EXPIRED.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.core.clock import utc_naive_now
from medcenter.services.reservation_service import sweep_expired

logger = logging.getLogger(__name__)


async def run_sweep(session: AsyncSession, *, now: datetime | None = None) -> int:
    """Expire lapsed holds. Returns how many were released; 0 if the sweep failed."""
    now = now or utc_naive_now()
    try:
        released = await sweep_expired(session, now)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Reservation sweep failed: %s", e)
        return 0
    if released:
        logger.info("Reservation sweep: released %d expired hold(s)", released)
    return released
