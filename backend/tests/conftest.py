import datetime as dt
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from campus_booking.database import StorageContext
from campus_booking.models import Base, Reservation, ReservationStatus, Space, SpaceType, TimeSlot, User, UserRole
from campus_booking.schemas import ReservationRead, SpaceRead, TimeSlotRead, UserRead
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

DAY = dt.date(2024, 3, 4)

_ROW_TYPES: dict[type, type] = {
    SpaceRead: Space,
    UserRead: User,
    TimeSlotRead: TimeSlot,
    ReservationRead: Reservation,
}


def _memory_engine() -> AsyncEngine:
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest_asyncio.fixture
async def storage() -> AsyncIterator[StorageContext]:
    ctx = StorageContext(remote_engine=_memory_engine(), cache_engine=_memory_engine())
    async with ctx.remote_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await ctx.create_cache_schema()
    yield ctx
    await ctx.dispose()


@pytest.fixture
def seed_remote(storage: StorageContext) -> Callable[..., Awaitable[None]]:
    """Insert records straight into the authoritative database."""

    async def _seed(*records: Any) -> None:
        async with storage.remote_sessions.begin() as session:
            for record in records:
                session.add(_ROW_TYPES[type(record)](**record.to_db_values()))

    return _seed


@pytest.fixture
def make_space() -> Callable[..., SpaceRead]:
    def _make(
        space_id: str = "court-1",
        *,
        name: str = "Cancha de fútbol",
        type: SpaceType = SpaceType.COURT,
        is_active: bool = True,
    ) -> SpaceRead:
        return SpaceRead(
            id=space_id,
            name=name,
            type=type,
            description="Cancha techada",
            capacity=20,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_user() -> Callable[..., UserRead]:
    def _make(
        user_id: str = "u1",
        *,
        name: str = "Ana López",
        email: str = "ana@uvg.edu.gt",
        role: UserRole = UserRole.STUDENT,
    ) -> UserRead:
        return UserRead(id=user_id, name=name, email=email, role=role)

    return _make


@pytest.fixture
def make_reservation() -> Callable[..., ReservationRead]:
    def _make(
        reservation_id: str = "r1",
        *,
        space_id: str = "court-1",
        on_date: dt.date = DAY,
        start: str = "10:00",
        end: str = "11:00",
        status: ReservationStatus = ReservationStatus.PENDING,
        user_id: str = "u1",
        user_name: str = "Ana López",
        description: str = "Partido de fútbol",
        created_at: Optional[dt.datetime] = None,
        approved_by: Optional[str] = None,
        rejection_reason: Optional[str] = None,
    ) -> ReservationRead:
        return ReservationRead(
            id=reservation_id,
            space_id=space_id,
            space_name="Cancha de fútbol",
            space_type=SpaceType.COURT,
            user_id=user_id,
            user_name=user_name,
            user_email=f"{user_id}@uvg.edu.gt",
            date=on_date,
            start_time=dt.time.fromisoformat(start),
            end_time=dt.time.fromisoformat(end),
            description=description,
            status=status,
            created_at=created_at or dt.datetime(2024, 3, 1, 12, 0, 0),
            approved_by=approved_by,
            rejection_reason=rejection_reason,
        )

    return _make


@pytest.fixture
def make_slot() -> Callable[..., TimeSlotRead]:
    def _make(
        slot_id: str = "s1",
        *,
        space_id: str = "court-1",
        on_date: dt.date = DAY,
        start: str = "10:00",
        end: str = "11:00",
        status: Any = None,
    ) -> TimeSlotRead:
        values: dict[str, Any] = {
            "id": slot_id,
            "space_id": space_id,
            "date": on_date,
            "start_time": dt.time.fromisoformat(start),
            "end_time": dt.time.fromisoformat(end),
        }
        if status is not None:
            values["status"] = status
        return TimeSlotRead(**values)

    return _make
