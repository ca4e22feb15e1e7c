"""Shared fixtures: a throwaway SQLite database per test and a seeded doctor."""
import os
from datetime import date, time
from typing import AsyncGenerator

# Settings are read at import time; keep tests independent of any local .env
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./medcenter-test-unused.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"
os.environ["APP_TIMEZONE"] = "UTC"

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import medcenter.models  # noqa: E402,F401 - register tables
from medcenter.models.doctor import Doctor, DoctorCreate  # noqa: E402
from medcenter.models.leave import DoctorLeave, LeaveKind  # noqa: E402
from medcenter.services.doctor_service import create_doctor  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'medcenter.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def doctor(session: AsyncSession) -> Doctor:
    """Works every day, 09:00-17:00 in 30-minute slots."""
    doc = await create_doctor(
        session,
        DoctorCreate(
            name="Dr. Asha Rao",
            specialty="Cardiology",
            specializations=["Echocardiography", "Hypertension"],
            working_days="1,2,3,4,5,6,7",
            work_start=time(9, 0),
            work_end=time(17, 0),
            slot_duration_minutes=30,
        ),
    )
    await session.commit()
    return doc


@pytest_asyncio.fixture
async def add_leave(session: AsyncSession):
    async def _add(doctor_id: int, d: date, kind: LeaveKind) -> DoctorLeave:
        leave = DoctorLeave(doctor_id=doctor_id, leave_date=d, leave_kind=kind, reason="Conference")
        session.add(leave)
        await session.commit()
        return leave

    return _add
