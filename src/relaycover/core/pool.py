"""
Relay pool capability consumed by subscription sessions.

A relay pool answers one historical query against an explicit set of
endpoints and reports, per endpoint, a ``CONNECTING`` notice, zero or more
``EVENT`` messages, and exactly one terminal ``EOSE`` or ``ERROR``. The end
of the async iterator is the pool-wide completion signal.

The target endpoints are a parameter of every query rather than shared
"default relays" state, so concurrent queries never interfere.

Attributes:
    PoolMessage: One message of a pool query stream.
    RelayPool: Structural protocol sessions depend on.
    NostrSdkRelayPool: Production pool keeping one connected nostr-sdk
        client per endpoint and reusing it across queries.
    build_filter: nostr-sdk ``Filter`` factory for kinds/authors/limit.

Examples:
    ```python
    async with NostrSdkRelayPool(timeout=7.0) as pool:
        async for message in pool.query(
            kinds=[10002], authors=[pubkey], relays=["wss://nos.lol"], limit=3
        ):
            if message.type is PoolMessageType.EVENT:
                print(message.relay, message.event.created_at)
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, Self

from nostr_sdk import Client, ClientBuilder, Filter, Kind, PublicKey, RelayUrl

from relaycover.models.event import Event

from .exceptions import ConnectivityError, ProtocolError


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from types import TracebackType

    from nostr_sdk import Event as NostrEvent


DEFAULT_TIMEOUT = 7.0

logger = logging.getLogger(__name__)

# nostr-sdk logs its own connection noise; failures are reported through pool messages
logging.getLogger("nostr_sdk").setLevel(logging.CRITICAL)


class PoolMessageType(StrEnum):
    CONNECTING = "connecting"
    EVENT = "event"
    EOSE = "eose"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class PoolMessage:
    """One message of a pool query stream, attributed to its source endpoint."""

    type: PoolMessageType
    relay: str
    event: Event | None = None
    error: str | None = None

    @classmethod
    def connecting(cls, relay: str) -> PoolMessage:
        return cls(PoolMessageType.CONNECTING, relay)

    @classmethod
    def received(cls, relay: str, event: Event) -> PoolMessage:
        return cls(PoolMessageType.EVENT, relay, event=event)

    @classmethod
    def eose(cls, relay: str) -> PoolMessage:
        return cls(PoolMessageType.EOSE, relay)

    @classmethod
    def failed(cls, relay: str, error: str) -> PoolMessage:
        return cls(PoolMessageType.ERROR, relay, error=error)


class RelayPool(Protocol):
    """Anything that can run a backward (historical) query against endpoints."""

    def query(
        self,
        kinds: Sequence[int],
        authors: Sequence[str],
        relays: Sequence[str],
        *,
        limit: int | None = None,
    ) -> AsyncIterator[PoolMessage]: ...


def build_filter(kinds: Sequence[int], authors: Sequence[str], limit: int | None = None) -> Filter:
    """Build a nostr-sdk ``Filter`` for the given kinds and hex authors."""
    f = Filter().kinds([Kind(k) for k in kinds]).authors([PublicKey.parse(a) for a in authors])
    if limit is not None:
        f = f.limit(limit)
    return f


def _to_event(evt: NostrEvent) -> Event:
    """Convert a nostr-sdk event into the engine's event model.

    Raises:
        ProtocolError: If the payload does not form a usable event.
    """
    try:
        return Event.from_json(evt.as_json())
    except ValueError as e:
        raise ProtocolError(str(e)) from e


class NostrSdkRelayPool:
    """Relay pool backed by nostr-sdk clients.

    One client is connected per endpoint on first use and reused by later
    queries. A client whose connection or fetch fails is shut down and
    forgotten, so the next query reconnects from scratch.

    Args:
        timeout: Seconds allowed for connecting and for each fetch.
    """

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout
        self._clients: dict[str, Client] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def query(
        self,
        kinds: Sequence[int],
        authors: Sequence[str],
        relays: Sequence[str],
        *,
        limit: int | None = None,
    ) -> AsyncIterator[PoolMessage]:
        """Fetch matching events from every endpoint concurrently.

        Messages are yielded as each endpoint produces them. Closing the
        iterator early cancels the outstanding per-endpoint fetches.
        """
        if not relays or not authors:
            return

        event_filter = build_filter(kinds, authors, limit)
        queue: asyncio.Queue[PoolMessage | None] = asyncio.Queue()
        tasks = [
            asyncio.create_task(self._fetch_from(url, event_filter, queue)) for url in relays
        ]
        remaining = len(tasks)

        try:
            while remaining:
                message = await queue.get()
                if message is None:
                    remaining -= 1
                    continue
                yield message
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _fetch_from(
        self,
        url: str,
        event_filter: Filter,
        queue: asyncio.Queue[PoolMessage | None],
    ) -> None:
        """Run the query against one endpoint, reporting into ``queue``."""
        try:
            queue.put_nowait(PoolMessage.connecting(url))
            try:
                client = await self._client_for(url)
                events = await client.fetch_events(event_filter, timedelta(seconds=self._timeout))
            except asyncio.CancelledError:
                raise
            except Exception as e:  # nostr-sdk Rust FFI can raise arbitrary exception types
                logger.debug("relay_fetch_failed relay=%s error=%s", url, e)
                await self._discard(url)
                queue.put_nowait(PoolMessage.failed(url, str(e)))
                return

            for evt in events.to_vec():
                try:
                    queue.put_nowait(PoolMessage.received(url, _to_event(evt)))
                except ProtocolError as e:
                    logger.debug("event_skipped relay=%s error=%s", url, e)
            queue.put_nowait(PoolMessage.eose(url))
        finally:
            queue.put_nowait(None)

    async def _client_for(self, url: str) -> Client:
        """Return the connected client of ``url``, connecting on first use.

        Raises:
            ConnectivityError: If the relay refuses or fails the connection.
        """
        lock = self._locks.setdefault(url, asyncio.Lock())
        async with lock:
            client = self._clients.get(url)
            if client is not None:
                return client

            relay_url = RelayUrl.parse(url)
            client = ClientBuilder().build()
            await client.add_relay(relay_url)
            output = await client.try_connect(timedelta(seconds=self._timeout))

            if relay_url not in output.success:
                error_message = output.failed.get(relay_url, "Unknown error")
                with contextlib.suppress(Exception):
                    await client.shutdown()
                raise ConnectivityError(url, error_message)

            logger.debug("relay_connected relay=%s", url)
            self._clients[url] = client
            return client

    async def _discard(self, url: str) -> None:
        client = self._clients.pop(url, None)
        if client is not None:
            # nostr-sdk client.shutdown() can raise arbitrary errors from the Rust FFI layer
            with contextlib.suppress(Exception):
                await client.shutdown()

    async def close(self) -> None:
        """Shut down every cached client."""
        for url in list(self._clients):
            await self._discard(url)
