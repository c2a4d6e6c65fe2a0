from __future__ import annotations

import asyncio
import datetime as dt
from collections import defaultdict
from typing import AsyncIterator, Awaitable, Callable, TypeVar

T = TypeVar("T")

SPACES_TOPIC = "spaces"
RESERVATIONS_TOPIC = "reservations"


def slots_topic(space_id: str, on_date: dt.date) -> str:
    return f"slots:{space_id}:{on_date.isoformat()}"


class ChangeNotifier:
    """Per-topic version counters that cache observers wait on."""

    def __init__(self) -> None:
        self._versions: defaultdict[str, int] = defaultdict(int)
        self._condition = asyncio.Condition()

    def version(self, topic: str) -> int:
        return self._versions[topic]

    async def publish(self, *topics: str) -> None:
        async with self._condition:
            for topic in topics:
                self._versions[topic] += 1
            self._condition.notify_all()

    async def wait_for_change(self, topic: str, seen: int) -> int:
        async with self._condition:
            await self._condition.wait_for(lambda: self._versions[topic] != seen)
            return self._versions[topic]

    async def observe(self, topic: str, load: Callable[[], Awaitable[T]]) -> AsyncIterator[T]:
        """Yield ``load()`` now and again after every change to ``topic``."""
        seen = self.version(topic)
        yield await load()
        while True:
            seen = await self.wait_for_change(topic, seen)
            yield await load()
