import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response

from .config import get_settings
from .database import create_storage
from .infrastructure.auto_sync import SlotAutoSync
from .routers import admin, calendar, reservations, slots
from .utils.request_id import REQUEST_ID_HEADER, resolve_request_id, set_request_id

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    storage = create_storage(settings)
    await storage.create_cache_schema()
    auto_sync = SlotAutoSync(
        storage.remote,
        storage.cache,
        interval_seconds=settings.auto_sync_interval_seconds,
    )
    auto_sync.start()
    app.state.storage = storage
    app.state.auto_sync = auto_sync
    logger.info("Campus reservation service started")

    yield

    await auto_sync.stop()
    await storage.dispose()
    logger.info("Campus reservation service stopped")


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app = FastAPI(title="Campus Reservation API", lifespan=lifespan)
app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(slots.router)
app.include_router(reservations.router)
app.include_router(admin.router)
app.include_router(calendar.router)
