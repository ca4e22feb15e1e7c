from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.api.deps import get_requester
from medcenter.api.errors import raise_for_result
from medcenter.api.schemas.booking import AvailableSlotsResponse, SlotInfo
from medcenter.core.config import settings
from medcenter.core.db import get_session
from medcenter.services.booking_service import Requester, holder_identity_for
from medcenter.services.expiry_service import run_sweep
from medcenter.services.slot_service import available_slots

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=AvailableSlotsResponse)
async def list_available_slots(
    doctor_id: int = Query(...),
    date_param: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
    requester: Requester = Depends(get_requester),
) -> AvailableSlotsResponse:
    """Bookable slots of a doctor on a clinic-local date. Lapsed holds are swept first."""
    await run_sweep(session)
    result = await available_slots(
        session, doctor_id, date_param, exclude_holder=holder_identity_for(requester)
    )
    raise_for_result(result)
    return AvailableSlotsResponse(
        doctor_id=doctor_id,
        date=date_param.isoformat(),
        timezone=settings.app_timezone,
        slots=[
            SlotInfo(start_time=s.start_time, end_time=s.end_time, start_utc=s.start_utc, end_utc=s.end_utc)
            for s in result.data
        ],
        message=result.message,
    )
