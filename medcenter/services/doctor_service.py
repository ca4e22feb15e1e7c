from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.models.doctor import Doctor, DoctorCreate


async def get_doctor(session: AsyncSession, doctor_id: int) -> Doctor | None:
    """Active doctor by id; inactive doctors are treated as unknown."""
    result = await session.execute(
        select(Doctor).where(Doctor.id == doctor_id, Doctor.is_active == True)  # noqa: E712
    )
    return result.scalar_one_or_none()


async def list_doctors(session: AsyncSession, specialty: str | None = None) -> list[Doctor]:
    q = select(Doctor).where(Doctor.is_active == True).order_by(Doctor.name)  # noqa: E712
    if specialty:
        q = q.where(Doctor.specialty == specialty)
    result = await session.execute(q)
    return list(result.scalars().all())


async def create_doctor(session: AsyncSession, data: DoctorCreate) -> Doctor:
    doctor = Doctor(**data.model_dump())
    session.add(doctor)
    await session.flush()
    await session.refresh(doctor)
    return doctor
