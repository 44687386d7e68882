"""
Platform link channel: the initial (cold start) URI plus a stream of URIs received
while the app runs. QueueLinkChannel is fed by platform glue via push().
"""
import asyncio
from typing import AsyncIterator, Protocol

from deep_link.links import LinkSource


class LinkChannelError(RuntimeError):
    """The platform link channel could not be opened."""


class LinkChannel(Protocol):
    async def open(self) -> None: ...

    async def initial_link(self) -> str | None: ...

    def __aiter__(self) -> AsyncIterator[tuple[str, LinkSource]]: ...


_CLOSED = object()


class QueueLinkChannel:
    def __init__(self, initial: str | None = None) -> None:
        self._initial = initial
        self._queue: asyncio.Queue = asyncio.Queue()
        self._opened = False
        self._closed = False

    async def open(self) -> None:
        if self._closed:
            raise LinkChannelError("link channel already closed")
        self._opened = True

    async def initial_link(self) -> str | None:
        """The launch URI, returned once."""
        initial, self._initial = self._initial, None
        return initial

    def push(self, uri: str, source: LinkSource = LinkSource.FOREGROUND) -> None:
        if self._closed:
            raise LinkChannelError("link channel already closed")
        self._queue.put_nowait((uri, LinkSource(source)))

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[tuple[str, LinkSource]]:
        if not self._opened:
            raise LinkChannelError("link channel not opened")
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
