import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from ..deps import get_current_user, get_local_cache, get_remote_store, get_today
from ..domain.repositories import LocalCache, RemoteStore
from ..schemas import CalendarDayRead, ReservationRead, UserRead
from ..usecases import calendar as calendar_usecase

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/days/{on_date}", response_model=List[ReservationRead])
async def day_reservations(
    on_date: dt.date,
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    user: UserRead = Depends(get_current_user),
) -> list[ReservationRead]:
    return await calendar_usecase.day_reservations(remote, cache, on_date=on_date)


@router.get("/{year}/{month}", response_model=List[CalendarDayRead])
async def month_calendar(
    year: int = Path(..., ge=1900, le=9998),
    month: int = Path(..., ge=1, le=12),
    selected: Optional[dt.date] = Query(default=None),
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    today: dt.date = Depends(get_today),
    user: UserRead = Depends(get_current_user),
) -> list[CalendarDayRead]:
    return await calendar_usecase.month_calendar(
        remote, cache, year=year, month=month, today=today, selected=selected
    )
