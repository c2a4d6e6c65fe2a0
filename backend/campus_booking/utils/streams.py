from typing import AsyncIterator, TypeVar

T = TypeVar("T")


async def first_snapshot(stream: AsyncIterator[T]) -> T:
    """Take the current snapshot of an observation and stop observing."""
    try:
        return await anext(stream)
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()
