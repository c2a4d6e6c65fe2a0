from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings
from .infrastructure.notifier import ChangeNotifier
from .infrastructure.repositories import SqlAlchemyLocalCache, SqlAlchemyRemoteStore
from .models import Base


@dataclass
class StorageContext:
    """Process-wide handles to the authoritative store and the local cache."""

    remote_engine: AsyncEngine
    cache_engine: AsyncEngine
    notifier: ChangeNotifier = field(default_factory=ChangeNotifier)

    def __post_init__(self) -> None:
        self.remote_sessions = async_sessionmaker(self.remote_engine, expire_on_commit=False, class_=AsyncSession)
        self.cache_sessions = async_sessionmaker(self.cache_engine, expire_on_commit=False, class_=AsyncSession)
        self.remote = SqlAlchemyRemoteStore(self.remote_sessions)
        self.cache = SqlAlchemyLocalCache(self.cache_sessions, self.notifier)

    async def create_cache_schema(self) -> None:
        async with self.cache_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.remote_engine.dispose()
        await self.cache_engine.dispose()


def create_storage(settings: Settings) -> StorageContext:
    remote_engine = create_async_engine(
        settings.remote_database_url,
        echo=settings.echo_sql,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
    cache_engine = create_async_engine(settings.cache_database_url, echo=settings.echo_sql)
    return StorageContext(remote_engine=remote_engine, cache_engine=cache_engine)
