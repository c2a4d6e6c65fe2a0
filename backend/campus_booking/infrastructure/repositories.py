from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

from sqlalchemy import Select, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import InvalidTransitionError, LocalCacheError, RemoteUnavailableError
from ..domain.repositories import LocalCache, RemoteStore, ReservationFilter
from ..models import Reservation, ReservationStatus, Space, TimeSlot, User
from ..schemas import ReservationRead, SpaceRead, TimeSlotRead, UserRead
from .notifier import RESERVATIONS_TOPIC, SPACES_TOPIC, ChangeNotifier, slots_topic

logger = logging.getLogger(__name__)


def _reservation_query(criteria: ReservationFilter) -> Select[tuple[Reservation]]:
    stmt = select(Reservation)
    if criteria.space_id is not None:
        stmt = stmt.where(Reservation.space_id == criteria.space_id)
    if criteria.on_date is not None:
        stmt = stmt.where(Reservation.date == criteria.on_date.isoformat())
    if criteria.user_id is not None:
        stmt = stmt.where(Reservation.user_id == criteria.user_id)
    if criteria.status_in is not None:
        stmt = stmt.where(Reservation.status.in_(list(criteria.status_in)))
    if criteria.date_range is not None:
        start, end = criteria.date_range
        stmt = stmt.where(Reservation.date >= start.isoformat(), Reservation.date <= end.isoformat())
    if criteria.from_date is not None:
        stmt = stmt.where(Reservation.date >= criteria.from_date.isoformat())
    if criteria.ids is not None:
        stmt = stmt.where(Reservation.id.in_(sorted(criteria.ids)))
    if criteria.newest_first:
        return stmt.order_by(Reservation.created_at.desc(), Reservation.id)
    return stmt.order_by(Reservation.date, Reservation.start_time, Reservation.created_at, Reservation.id)


def _slot_query(space_id: str, on_date: dt.date) -> Select[tuple[TimeSlot]]:
    return (
        select(TimeSlot)
        .where(TimeSlot.space_id == space_id, TimeSlot.date == on_date.isoformat())
        .order_by(TimeSlot.start_time)
    )


class SqlAlchemyRemoteStore(RemoteStore):
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.sessions.begin() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.warning("remote store %s failed: %s", operation, exc)
            raise RemoteUnavailableError(f"remote store unavailable during {operation}") from exc

    async def get_space(self, space_id: str) -> SpaceRead | None:
        async with self._transaction("get_space") as session:
            row = await session.get(Space, space_id)
            return SpaceRead.model_validate(row) if row is not None else None

    async def list_active_spaces(self) -> list[SpaceRead]:
        async with self._transaction("list_active_spaces") as session:
            rows = await session.scalars(select(Space).where(Space.is_active.is_(True)).order_by(Space.name))
            return [SpaceRead.model_validate(row) for row in rows]

    async def list_slots(self, space_id: str, on_date: dt.date) -> list[TimeSlotRead]:
        async with self._transaction("list_slots") as session:
            rows = await session.scalars(_slot_query(space_id, on_date))
            return [TimeSlotRead.model_validate(row) for row in rows]

    async def list_reservations(self, criteria: ReservationFilter) -> list[ReservationRead]:
        async with self._transaction("list_reservations") as session:
            rows = await session.scalars(_reservation_query(criteria))
            return [ReservationRead.model_validate(row) for row in rows]

    async def get_reservation(self, reservation_id: str) -> ReservationRead | None:
        async with self._transaction("get_reservation") as session:
            row = await session.get(Reservation, reservation_id)
            return ReservationRead.model_validate(row) if row is not None else None

    async def create_reservation(self, record: ReservationRead) -> ReservationRead:
        async with self._transaction("create_reservation") as session:
            session.add(Reservation(**record.to_db_values()))
            await session.flush()
        return record

    async def update_reservation(
        self,
        reservation_id: str,
        patch: Mapping[str, Any],
        *,
        expected_status: ReservationStatus | None = None,
    ) -> ReservationRead | None:
        async with self._transaction("update_reservation") as session:
            row = await session.get(Reservation, reservation_id, with_for_update=True)
            if row is None:
                return None
            if expected_status is not None and row.status != expected_status:
                raise InvalidTransitionError(f"reservation is {row.status.value}, expected {expected_status.value}")
            for field, value in patch.items():
                setattr(row, field, value)
            await session.flush()
            return ReservationRead.model_validate(row)

    async def get_user(self, user_id: str) -> UserRead | None:
        async with self._transaction("get_user") as session:
            row = await session.get(User, user_id)
            return UserRead.model_validate(row) if row is not None else None


class SqlAlchemyLocalCache(LocalCache):
    def __init__(self, sessions: async_sessionmaker[AsyncSession], notifier: ChangeNotifier) -> None:
        self.sessions = sessions
        self.notifier = notifier

    @asynccontextmanager
    async def _write(self, operation: str, *topics: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.sessions.begin() as session:
                yield session
        except SQLAlchemyError as exc:
            raise LocalCacheError(f"local cache {operation} failed") from exc
        await self.notifier.publish(*topics)

    # Spaces

    async def upsert_space(self, space: SpaceRead) -> None:
        await self.upsert_spaces([space])

    async def upsert_spaces(self, spaces: Sequence[SpaceRead]) -> None:
        async with self._write("upsert_spaces", SPACES_TOPIC) as session:
            for space in spaces:
                await session.merge(Space(**space.to_db_values()))

    async def get_space(self, space_id: str) -> SpaceRead | None:
        async with self.sessions() as session:
            row = await session.get(Space, space_id)
            return SpaceRead.model_validate(row) if row is not None else None

    async def _active_spaces(self) -> list[SpaceRead]:
        async with self.sessions() as session:
            rows = await session.scalars(select(Space).where(Space.is_active.is_(True)).order_by(Space.name))
            return [SpaceRead.model_validate(row) for row in rows]

    def observe_active_spaces(self) -> AsyncIterator[list[SpaceRead]]:
        return self.notifier.observe(SPACES_TOPIC, self._active_spaces)

    # Time slots

    async def replace_slots(self, space_id: str, on_date: dt.date, slots: Sequence[TimeSlotRead]) -> None:
        async with self._write("replace_slots", slots_topic(space_id, on_date)) as session:
            await session.execute(
                delete(TimeSlot).where(TimeSlot.space_id == space_id, TimeSlot.date == on_date.isoformat())
            )
            session.add_all([TimeSlot(**slot.to_db_values()) for slot in slots])

    async def list_slots(self, space_id: str, on_date: dt.date) -> list[TimeSlotRead]:
        async with self.sessions() as session:
            rows = await session.scalars(_slot_query(space_id, on_date))
            return [TimeSlotRead.model_validate(row) for row in rows]

    def observe_slots(self, space_id: str, on_date: dt.date) -> AsyncIterator[list[TimeSlotRead]]:
        return self.notifier.observe(
            slots_topic(space_id, on_date),
            lambda: self.list_slots(space_id, on_date),
        )

    # Reservations

    async def upsert_reservation(self, reservation: ReservationRead) -> None:
        await self.upsert_reservations([reservation])

    async def upsert_reservations(self, reservations: Sequence[ReservationRead]) -> None:
        async with self._write("upsert_reservations", RESERVATIONS_TOPIC) as session:
            for reservation in reservations:
                await session.merge(Reservation(**reservation.to_db_values()))

    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRead]:
        async with self.sessions() as session:
            row = await session.get(Reservation, reservation_id)
            return ReservationRead.model_validate(row) if row is not None else None

    async def list_reservations(self, criteria: ReservationFilter) -> list[ReservationRead]:
        async with self.sessions() as session:
            rows = await session.scalars(_reservation_query(criteria))
            return [ReservationRead.model_validate(row) for row in rows]

    def observe_reservations(self, criteria: ReservationFilter) -> AsyncIterator[list[ReservationRead]]:
        return self.notifier.observe(RESERVATIONS_TOPIC, lambda: self.list_reservations(criteria))

    async def clear_all_reservations(self) -> None:
        async with self._write("clear_all_reservations", RESERVATIONS_TOPIC) as session:
            await session.execute(delete(Reservation))

    # Users

    async def upsert_user(self, user: UserRead) -> None:
        async with self._write("upsert_user") as session:
            await session.merge(User(**user.to_db_values()))

    async def get_user(self, user_id: str) -> UserRead | None:
        async with self.sessions() as session:
            row = await session.get(User, user_id)
            return UserRead.model_validate(row) if row is not None else None

    async def clear_all_users(self) -> None:
        async with self._write("clear_all_users") as session:
            await session.execute(delete(User))
