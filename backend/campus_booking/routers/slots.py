import datetime as dt
import json
from typing import AsyncIterator, List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from ..deps import get_auto_sync, get_local_cache, get_remote_store
from ..domain.errors import RemoteUnavailableError
from ..domain.repositories import LocalCache, RemoteStore
from ..infrastructure.auto_sync import SlotAutoSync
from ..schemas import SpaceRead, TimeSlotRead
from ..usecases import slots as slot_usecase
from ..usecases import spaces as space_usecase
from ..utils.streams import first_snapshot

router = APIRouter(prefix="/spaces", tags=["spaces"])


async def _require_active_space(remote: RemoteStore, cache: LocalCache, space_id: str) -> SpaceRead:
    try:
        space = await space_usecase.get_space(remote, cache, space_id=space_id)
    except RemoteUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="space store unavailable")
    if space is None or not space.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="space not found")
    return space


@router.get("", response_model=List[SpaceRead])
async def list_spaces(
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
) -> list[SpaceRead]:
    await space_usecase.sync_spaces(remote, cache)
    return await first_snapshot(space_usecase.observe_spaces(cache))


@router.get("/{space_id}", response_model=SpaceRead)
async def get_space(
    space_id: str,
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
) -> SpaceRead:
    try:
        space = await space_usecase.get_space(remote, cache, space_id=space_id)
    except RemoteUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="space store unavailable")
    if space is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="space not found")
    return space


@router.get("/{space_id}/slots", response_model=List[TimeSlotRead])
async def list_slots(
    space_id: str,
    on_date: dt.date = Query(..., alias="date", description="ISO date (YYYY-MM-DD)"),
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
) -> list[TimeSlotRead]:
    await _require_active_space(remote, cache, space_id)
    await slot_usecase.sync_time_slots(remote, cache, space_id=space_id, on_date=on_date)
    return await first_snapshot(slot_usecase.observe_time_slots(cache, space_id=space_id, on_date=on_date))


@router.get("/{space_id}/slots/stream")
async def stream_slots(
    space_id: str,
    on_date: dt.date = Query(..., alias="date", description="ISO date (YYYY-MM-DD)"),
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    auto_sync: SlotAutoSync = Depends(get_auto_sync),
) -> StreamingResponse:
    """Newline-delimited JSON slot snapshots, resynced periodically while connected."""
    await _require_active_space(remote, cache, space_id)

    async def snapshots() -> AsyncIterator[str]:
        async with auto_sync.watching(space_id, on_date):
            await slot_usecase.sync_time_slots(remote, cache, space_id=space_id, on_date=on_date)
            stream = slot_usecase.observe_time_slots(cache, space_id=space_id, on_date=on_date)
            try:
                async for slots in stream:
                    yield json.dumps([slot.model_dump(mode="json") for slot in slots], ensure_ascii=False) + "\n"
            finally:
                await stream.aclose()

    return StreamingResponse(snapshots(), media_type="application/x-ndjson")
