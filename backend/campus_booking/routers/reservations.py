from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import get_current_user, get_local_cache, get_remote_store
from ..domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    RemoteUnavailableError,
    ValidationError,
)
from ..domain.repositories import LocalCache, RemoteStore
from ..schemas import ReservationCreate, ReservationRead, UserRead
from ..usecases import accounts as account_usecase
from ..usecases import reservations as reservation_usecase
from ..usecases.accounts import STAFF_ROLES
from ..utils.audit_log import AuditAction, audit_reservation
from ..utils.streams import first_snapshot

router = APIRouter(prefix="", tags=["reservations"])


def _audit(action: AuditAction, **kwargs: Any) -> None:
    try:
        audit_reservation(action, **kwargs)
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log unavailable")


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    user: UserRead = Depends(get_current_user),
) -> ReservationRead:
    try:
        reservation = await reservation_usecase.create_reservation(remote, cache, request=payload, requester=user)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except RemoteUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")

    _audit(
        "reservation.created",
        initiator="user",
        actor_id=user.id,
        reservation=reservation,
        status_from=None,
    )
    return reservation


@router.get("/me/reservations", response_model=List[ReservationRead])
async def list_my_reservations(
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    user: UserRead = Depends(get_current_user),
) -> list[ReservationRead]:
    await reservation_usecase.sync_user_reservations(remote, cache, user_id=user.id)
    return await first_snapshot(reservation_usecase.observe_user_reservations(cache, user_id=user.id))


@router.post("/me/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    reservation_id: str,
    remote: RemoteStore = Depends(get_remote_store),
    cache: LocalCache = Depends(get_local_cache),
    user: UserRead = Depends(get_current_user),
) -> ReservationRead:
    try:
        existing = await reservation_usecase.get_reservation(remote, reservation_id=reservation_id)
        if existing.user_id != user.id and user.role not in STAFF_ROLES:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
        updated, status_from = await reservation_usecase.cancel_reservation(
            remote, cache, reservation_id=reservation_id
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except RemoteUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")

    if status_from != updated.status:
        _audit(
            "reservation.cancelled",
            initiator="user" if updated.user_id == user.id else "staff",
            actor_id=user.id,
            reservation=updated,
            status_from=status_from,
        )
    return updated


@router.post("/me/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    cache: LocalCache = Depends(get_local_cache),
    user: UserRead = Depends(get_current_user),
) -> None:
    await account_usecase.clear_local_state(cache)
