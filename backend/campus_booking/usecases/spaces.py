import logging
from typing import AsyncIterator

from ..domain.errors import LocalCacheError, RemoteUnavailableError
from ..domain.repositories import LocalCache, RemoteStore
from ..schemas import SpaceRead

logger = logging.getLogger(__name__)


async def sync_spaces(remote: RemoteStore, cache: LocalCache) -> bool:
    """Refresh cached active spaces. Keeps the cached copy when the remote fails."""
    try:
        spaces = await remote.list_active_spaces()
        await cache.upsert_spaces(spaces)
    except (RemoteUnavailableError, LocalCacheError):
        logger.warning("space sync failed; serving cached spaces", exc_info=True)
        return False
    return True


async def get_space(remote: RemoteStore, cache: LocalCache, *, space_id: str) -> SpaceRead | None:
    cached = await cache.get_space(space_id)
    if cached is not None:
        return cached

    space = await remote.get_space(space_id)
    if space is not None:
        try:
            await cache.upsert_space(space)
        except LocalCacheError:
            logger.warning("could not cache space %s", space_id, exc_info=True)
    return space


def observe_spaces(cache: LocalCache) -> AsyncIterator[list[SpaceRead]]:
    return cache.observe_active_spaces()
