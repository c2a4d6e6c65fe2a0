import datetime as dt
from typing import Optional

from ..domain.month_grid import build_calendar_days, visible_range
from ..domain.repositories import LocalCache, RemoteStore
from ..schemas import CalendarDayRead, ReservationRead
from ..utils.streams import first_snapshot
from .reservations import observe_approved_in_range, sync_reservations_in_range


async def _approved_snapshot(cache: LocalCache, start: dt.date, end: dt.date) -> list[ReservationRead]:
    return await first_snapshot(observe_approved_in_range(cache, start=start, end=end))


async def month_calendar(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    year: int,
    month: int,
    today: dt.date,
    selected: Optional[dt.date] = None,
) -> list[CalendarDayRead]:
    start, end = visible_range(year, month)
    await sync_reservations_in_range(remote, cache, start=start, end=end)
    reservations = await _approved_snapshot(cache, start, end)
    return build_calendar_days(year, month, reservations, today=today, selected=selected)


async def day_reservations(remote: RemoteStore, cache: LocalCache, *, on_date: dt.date) -> list[ReservationRead]:
    """Approved reservations of one day, grouped by space and ordered by start."""
    await sync_reservations_in_range(remote, cache, start=on_date, end=on_date)
    reservations = await _approved_snapshot(cache, on_date, on_date)
    return sorted(reservations, key=lambda r: (r.space_id, r.start_time))
