import datetime as dt
import logging
from typing import AsyncIterator

from ..domain.errors import LocalCacheError, RemoteUnavailableError
from ..domain.repositories import LocalCache, RemoteStore, ReservationFilter
from ..domain.slots import OCCUPYING_STATUSES, evaluate_configured_slots, generate_default_slots
from ..schemas import TimeSlotRead

logger = logging.getLogger(__name__)


async def sync_time_slots(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    space_id: str,
    on_date: dt.date,
) -> list[TimeSlotRead] | None:
    """
    Recompute the slot grid of one space and date and replace the cached copy.

    Returns the slots written to the cache, or None when the sync was abandoned.
    A remote failure leaves the cached slots untouched so readers keep the last
    known state.
    """
    try:
        configured = await remote.list_slots(space_id, on_date)
        reservations = await remote.list_reservations(
            ReservationFilter(space_id=space_id, on_date=on_date, status_in=OCCUPYING_STATUSES)
        )
    except RemoteUnavailableError:
        logger.warning("slot sync for %s on %s failed; keeping cached slots", space_id, on_date)
        return None

    if configured:
        slots = evaluate_configured_slots(configured, reservations)
    else:
        slots = generate_default_slots(space_id, on_date, reservations)

    try:
        await cache.replace_slots(space_id, on_date, slots)
    except LocalCacheError:
        logger.exception("could not cache slots for %s on %s", space_id, on_date)
        return None
    return slots


def observe_time_slots(cache: LocalCache, *, space_id: str, on_date: dt.date) -> AsyncIterator[list[TimeSlotRead]]:
    return cache.observe_slots(space_id, on_date)
