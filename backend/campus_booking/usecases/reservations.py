import datetime as dt
import logging
import uuid
from typing import Any, AsyncIterator, Mapping

from ..domain.errors import LocalCacheError, NotFoundError, RemoteUnavailableError, SpaceUnavailableError
from ..domain.repositories import LocalCache, RemoteStore, ReservationFilter
from ..domain.services import ensure_transition, validate_rejection_reason, validate_reservation_request
from ..models import ReservationStatus
from ..schemas import ReservationCreate, ReservationRead, UserRead
from ..utils.time import utc_now_naive
from .spaces import get_space

logger = logging.getLogger(__name__)


async def _mirror(cache: LocalCache, reservation: ReservationRead) -> None:
    # The remote write already succeeded; the next sync repairs a stale cache.
    try:
        await cache.upsert_reservation(reservation)
    except LocalCacheError:
        logger.warning("cache mirror failed for reservation %s", reservation.id, exc_info=True)


async def create_reservation(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    request: ReservationCreate,
    requester: UserRead,
) -> ReservationRead:
    validate_reservation_request(request)

    space = await get_space(remote, cache, space_id=request.space_id)
    if space is None:
        raise NotFoundError("space not found")
    if not space.is_active:
        raise SpaceUnavailableError("space is not active")

    # Overlapping pending requests are allowed; staff reconcile at approval time.
    reservation = ReservationRead(
        id=str(uuid.uuid4()),
        space_id=space.id,
        space_name=space.name,
        space_type=space.type,
        user_id=requester.id,
        user_name=requester.name,
        user_email=requester.email,
        date=request.date,
        start_time=request.start_time,
        end_time=request.end_time,
        description=request.description,
        status=ReservationStatus.PENDING,
        # MySQL DATETIME stores whole seconds
        created_at=utc_now_naive().replace(microsecond=0),
    )
    created = await remote.create_reservation(reservation)
    await _mirror(cache, created)
    return created


async def _transition(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    reservation_id: str,
    target: ReservationStatus,
    patch: Mapping[str, Any],
) -> tuple[ReservationRead, ReservationStatus]:
    current = await remote.get_reservation(reservation_id)
    if current is None:
        raise NotFoundError("reservation not found")
    # Idempotent: repeating the transition that already happened is a no-op
    if current.status == target:
        await _mirror(cache, current)
        return current, current.status
    ensure_transition(current.status, target)

    updated = await remote.update_reservation(
        reservation_id,
        {"status": target, **patch},
        expected_status=current.status,
    )
    if updated is None:
        raise NotFoundError("reservation not found")
    await _mirror(cache, updated)
    return updated, current.status


async def approve_reservation(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    reservation_id: str,
    approver_id: str,
) -> tuple[ReservationRead, ReservationStatus]:
    """Approve a pending reservation. Returns the record and its previous status."""
    return await _transition(
        remote,
        cache,
        reservation_id=reservation_id,
        target=ReservationStatus.APPROVED,
        patch={"approved_by": approver_id},
    )


async def reject_reservation(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    reservation_id: str,
    reason: str,
) -> tuple[ReservationRead, ReservationStatus]:
    cleaned = validate_rejection_reason(reason)
    return await _transition(
        remote,
        cache,
        reservation_id=reservation_id,
        target=ReservationStatus.REJECTED,
        patch={"rejection_reason": cleaned},
    )


async def cancel_reservation(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    reservation_id: str,
) -> tuple[ReservationRead, ReservationStatus]:
    return await _transition(
        remote,
        cache,
        reservation_id=reservation_id,
        target=ReservationStatus.CANCELLED,
        patch={},
    )


async def get_reservation(remote: RemoteStore, *, reservation_id: str) -> ReservationRead:
    reservation = await remote.get_reservation(reservation_id)
    if reservation is None:
        raise NotFoundError("reservation not found")
    return reservation


# Read surface: snapshots of the local cache, refreshed by the sync_* calls below.


def observe_user_reservations(cache: LocalCache, *, user_id: str) -> AsyncIterator[list[ReservationRead]]:
    return cache.observe_reservations(ReservationFilter(user_id=user_id, newest_first=True))


def observe_pending_reservations(cache: LocalCache, *, today: dt.date) -> AsyncIterator[list[ReservationRead]]:
    return cache.observe_reservations(
        ReservationFilter(status_in=frozenset({ReservationStatus.PENDING}), from_date=today)
    )


def observe_approved_in_range(
    cache: LocalCache,
    *,
    start: dt.date,
    end: dt.date,
) -> AsyncIterator[list[ReservationRead]]:
    return cache.observe_reservations(
        ReservationFilter(status_in=frozenset({ReservationStatus.APPROVED}), date_range=(start, end))
    )


async def _cached_strays(
    remote: RemoteStore,
    cache: LocalCache,
    criteria: ReservationFilter,
    fetched: list[ReservationRead],
) -> list[ReservationRead]:
    """Remote copies of rows the cache still lists under ``criteria`` but the remote no longer does."""
    fetched_ids = {r.id for r in fetched}
    stray_ids = frozenset(r.id for r in await cache.list_reservations(criteria) if r.id not in fetched_ids)
    if not stray_ids:
        return []
    return await remote.list_reservations(ReservationFilter(ids=stray_ids))


async def _sync(
    remote: RemoteStore,
    cache: LocalCache,
    criteria: ReservationFilter,
    label: str,
    *,
    refresh_cached: bool = False,
) -> bool:
    try:
        reservations = await remote.list_reservations(criteria)
        if refresh_cached:
            reservations = reservations + await _cached_strays(remote, cache, criteria, reservations)
        await cache.upsert_reservations(reservations)
    except (RemoteUnavailableError, LocalCacheError):
        logger.warning("%s sync failed; serving cached reservations", label, exc_info=True)
        return False
    return True


async def sync_user_reservations(remote: RemoteStore, cache: LocalCache, *, user_id: str) -> bool:
    return await _sync(remote, cache, ReservationFilter(user_id=user_id), "user reservation")


async def sync_pending_reservations(remote: RemoteStore, cache: LocalCache) -> bool:
    return await _sync(
        remote,
        cache,
        ReservationFilter(status_in=frozenset({ReservationStatus.PENDING})),
        "pending reservation",
        refresh_cached=True,
    )


async def sync_reservations_in_range(
    remote: RemoteStore,
    cache: LocalCache,
    *,
    start: dt.date,
    end: dt.date,
) -> bool:
    return await _sync(remote, cache, ReservationFilter(date_range=(start, end)), "range reservation")
