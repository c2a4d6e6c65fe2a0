from __future__ import annotations

import calendar
import datetime as dt
from typing import Iterable, Optional

from ..models import ReservationStatus
from ..schemas import CalendarDayRead, ReservationRead

GRID_CELLS = 42  # 6 weeks * 7 days


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def leading_padding(year: int, month: int) -> int:
    """Days shown before the 1st; Monday-first weeks."""
    return calendar.monthrange(year, month)[0]


def visible_range(year: int, month: int) -> tuple[dt.date, dt.date]:
    """First and last date covered by the 42-cell grid of a month."""
    first = dt.date(year, month, 1)
    start = first - dt.timedelta(days=leading_padding(year, month))
    return start, start + dt.timedelta(days=GRID_CELLS - 1)


def build_calendar_days(
    year: int,
    month: int,
    reservations: Iterable[ReservationRead],
    *,
    today: dt.date,
    selected: Optional[dt.date] = None,
) -> list[CalendarDayRead]:
    approved = [r for r in reservations if r.status == ReservationStatus.APPROVED]
    start, _ = visible_range(year, month)
    days: list[CalendarDayRead] = []

    for offset in range(GRID_CELLS):
        current = start + dt.timedelta(days=offset)
        if (current.year, current.month) != (year, month):
            days.append(CalendarDayRead(date=current, is_available=False))
            continue
        matching = [r for r in approved if r.date == current]
        days.append(
            CalendarDayRead(
                date=current,
                reservations=matching,
                has_reservations=bool(matching),
                is_available=True,
                is_today=current == today,
                is_selected=current == selected,
            )
        )

    return days
