import datetime as dt

from fastapi import Depends, Header, HTTPException, Request, status

from .config import Settings, get_settings
from .database import StorageContext
from .domain.errors import AuthorizationError, RemoteUnavailableError
from .domain.repositories import LocalCache, RemoteStore
from .infrastructure.auto_sync import SlotAutoSync
from .schemas import UserRead
from .usecases.accounts import ensure_institutional, ensure_staff
from .utils.auth import bearer_token, decode_access_token
from .utils.time import today_in


def get_storage(request: Request) -> StorageContext:
    return request.app.state.storage


def get_remote_store(storage: StorageContext = Depends(get_storage)) -> RemoteStore:
    return storage.remote


def get_local_cache(storage: StorageContext = Depends(get_storage)) -> LocalCache:
    return storage.cache


def get_auto_sync(request: Request) -> SlotAutoSync:
    return request.app.state.auto_sync


def get_today(settings: Settings = Depends(get_settings)) -> dt.date:
    return today_in(settings.local_timezone)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    authorization: str | None = Header(default=None),
    remote: RemoteStore = Depends(get_remote_store),
    settings: Settings = Depends(get_settings),
) -> UserRead:
    token = bearer_token(authorization)
    if token is None:
        raise _unauthorized("bearer token required")
    try:
        user_id = decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise _unauthorized("invalid token") from exc

    try:
        user = await remote.get_user(user_id)
    except RemoteUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="user store unavailable") from exc
    if user is None:
        raise _unauthorized("user not found")

    try:
        ensure_institutional(user, settings.institutional_email_domain)
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return user


async def require_staff(user: UserRead = Depends(get_current_user)) -> UserRead:
    try:
        ensure_staff(user)
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return user
