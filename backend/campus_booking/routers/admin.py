import datetime as dt
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import get_local_cache, get_remote_store, get_today, require_staff
from ..domain.errors import InvalidTransitionError, NotFoundError, RemoteUnavailableError, ValidationError
from ..domain.repositories import LocalCache, RemoteStore
from ..schemas import ReservationRead, ReservationReject, UserRead
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import AuditAction, audit_reservation
from ..utils.streams import first_snapshot

router = APIRouter(prefix="/admin/reservations", tags=["admin"])


def _audit(action: AuditAction, **kwargs: Any) -> None:
    try:
        audit_reservation(action, **kwargs)
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log unavailable")


@router.get("/pending", response_model=List[ReservationRead])
async def list_pending(
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    today: dt.date = Depends(get_today),
    staff: UserRead = Depends(require_staff),
) -> list[ReservationRead]:
    await reservation_usecase.sync_pending_reservations(remote, cache)
    return await first_snapshot(reservation_usecase.observe_pending_reservations(cache, today=today))


@router.post("/{reservation_id}/approve", response_model=ReservationRead)
async def approve_reservation(
    reservation_id: str,
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    staff: UserRead = Depends(require_staff),
) -> ReservationRead:
    try:
        updated, status_from = await reservation_usecase.approve_reservation(
            remote, cache, reservation_id=reservation_id, approver_id=staff.id
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except RemoteUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")

    if status_from != updated.status:
        _audit(
            "reservation.approved",
            initiator="staff",
            actor_id=staff.id,
            reservation=updated,
            status_from=status_from,
        )
    return updated


@router.post("/{reservation_id}/reject", response_model=ReservationRead)
async def reject_reservation(
    reservation_id: str,
    payload: ReservationReject,
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    staff: UserRead = Depends(require_staff),
) -> ReservationRead:
    try:
        updated, status_from = await reservation_usecase.reject_reservation(
            remote, cache, reservation_id=reservation_id, reason=payload.reason
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RemoteUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")

    if status_from != updated.status:
        _audit(
            "reservation.rejected",
            initiator="staff",
            actor_id=staff.id,
            reservation=updated,
            status_from=status_from,
            message=updated.rejection_reason,
        )
    return updated
