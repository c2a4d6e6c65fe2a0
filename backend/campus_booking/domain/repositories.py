from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional, Protocol, Sequence

from ..models import ReservationStatus
from ..schemas import ReservationRead, SpaceRead, TimeSlotRead, UserRead


@dataclass(frozen=True)
class ReservationFilter:
    space_id: Optional[str] = None
    on_date: Optional[dt.date] = None
    user_id: Optional[str] = None
    status_in: Optional[frozenset[ReservationStatus]] = None
    date_range: Optional[tuple[dt.date, dt.date]] = None
    from_date: Optional[dt.date] = None
    ids: Optional[frozenset[str]] = None
    newest_first: bool = False


class RemoteStore(Protocol):
    """Authoritative store. Failures raise RemoteUnavailableError; absence is None."""

    async def get_space(self, space_id: str) -> SpaceRead | None: ...

    async def list_active_spaces(self) -> list[SpaceRead]: ...

    async def list_slots(self, space_id: str, on_date: dt.date) -> list[TimeSlotRead]: ...

    async def list_reservations(self, criteria: ReservationFilter) -> list[ReservationRead]: ...

    async def get_reservation(self, reservation_id: str) -> ReservationRead | None: ...

    async def create_reservation(self, record: ReservationRead) -> ReservationRead: ...

    async def update_reservation(
        self,
        reservation_id: str,
        patch: Mapping[str, Any],
        *,
        expected_status: ReservationStatus | None = None,
    ) -> ReservationRead | None:
        """Apply ``patch``; raises InvalidTransitionError if the stored status is no longer ``expected_status``."""
        ...

    async def get_user(self, user_id: str) -> UserRead | None: ...


class LocalCache(Protocol):
    """Read-through cache. Write failures raise LocalCacheError."""

    async def upsert_space(self, space: SpaceRead) -> None: ...

    async def upsert_spaces(self, spaces: Sequence[SpaceRead]) -> None: ...

    async def get_space(self, space_id: str) -> SpaceRead | None: ...

    def observe_active_spaces(self) -> AsyncIterator[list[SpaceRead]]: ...

    async def replace_slots(self, space_id: str, on_date: dt.date, slots: Sequence[TimeSlotRead]) -> None: ...

    async def list_slots(self, space_id: str, on_date: dt.date) -> list[TimeSlotRead]: ...

    def observe_slots(self, space_id: str, on_date: dt.date) -> AsyncIterator[list[TimeSlotRead]]: ...

    async def upsert_reservation(self, reservation: ReservationRead) -> None: ...

    async def upsert_reservations(self, reservations: Sequence[ReservationRead]) -> None: ...

    async def get_reservation(self, reservation_id: str) -> ReservationRead | None: ...

    async def list_reservations(self, criteria: ReservationFilter) -> list[ReservationRead]: ...

    def observe_reservations(self, criteria: ReservationFilter) -> AsyncIterator[list[ReservationRead]]: ...

    async def clear_all_reservations(self) -> None: ...

    async def upsert_user(self, user: UserRead) -> None: ...

    async def get_user(self, user_id: str) -> UserRead | None: ...

    async def clear_all_users(self) -> None: ...
