"""Single-consumer async stream of progress updates."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Generic, TypeVar


if TYPE_CHECKING:
    from collections.abc import AsyncIterator


T = TypeVar("T")

_CLOSED = object()


class UpdateStream(Generic[T]):
    """Queue-backed update stream that can be iterated with ``async for``.

    Producers call [emit()][relaycover.core.stream.UpdateStream.emit] and
    finally [close()][relaycover.core.stream.UpdateStream.close]. Once
    closed, further emits are dropped, so a superseded run can never push
    updates to its consumer.

    Examples:
        ```python
        async for update in driver.start_analysis():
            render(update)
        ```
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._last: T | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last(self) -> T | None:
        """Most recent update emitted, if any."""
        return self._last

    def emit(self, update: T) -> bool:
        """Queue ``update``; return False if the stream is already closed."""
        if self._closed:
            return False
        self._last = update
        self._queue.put_nowait(update)
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    async def collect(self) -> list[T]:
        """Drain the stream until it is closed."""
        return [update async for update in self]
