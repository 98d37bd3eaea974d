"""Event builders and a scripted in-memory relay pool shared across test packages.

Usage: Registered via ``pytest_plugins`` in the root ``conftest.py``.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pytest

from relaycover.core.pool import PoolMessage
from relaycover.models import Event, EventKind
from relaycover.models.relay import normalize_relay_url


if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence


# =============================================================================
# Builders
# =============================================================================


def pubkey_for(n: int) -> str:
    """Deterministic 64-hex identity."""
    return f"{n:064x}"


def make_event(
    pubkey: str,
    kind: int,
    created_at: int = 1_700_000_000,
    tags: Sequence[Sequence[str]] = (),
    content: str = "",
) -> Event:
    """Build an event with a deterministic id."""
    digest = hashlib.sha256(f"{pubkey}:{kind}:{created_at}:{content}:{tags}".encode()).hexdigest()
    return Event(
        id=digest,
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tuple(tuple(t) for t in tags),
        content=content,
        sig="00" * 64,
    )


def relay_list_event(
    pubkey: str,
    relays: Sequence[str | tuple[str, str]],
    created_at: int = 1_700_000_000,
) -> Event:
    """Kind-10002 event; entries are URLs or ``(url, marker)`` pairs."""
    tags = []
    for entry in relays:
        if isinstance(entry, tuple):
            tags.append(["r", entry[0], entry[1]])
        else:
            tags.append(["r", entry])
    return make_event(pubkey, EventKind.RELAY_LIST, created_at, tags)


def contact_list_event(
    pubkey: str,
    followees: Sequence[str],
    created_at: int = 1_700_000_000,
    relays: dict[str, dict[str, bool]] | None = None,
) -> Event:
    """Kind-3 event; ``relays`` becomes the legacy JSON relay map."""
    tags = [["p", f] for f in followees]
    content = json.dumps(relays) if relays is not None else ""
    return make_event(pubkey, EventKind.CONTACTS, created_at, tags, content)


def profile_event(pubkey: str, created_at: int = 1_700_000_000, **fields: Any) -> Event:
    """Kind-0 event with JSON metadata content."""
    return make_event(pubkey, EventKind.SET_METADATA, created_at, content=json.dumps(fields))


# =============================================================================
# Fake relay pool
# =============================================================================


@dataclass(frozen=True)
class RecordedQuery:
    kinds: tuple[int, ...]
    authors: tuple[str, ...]
    relays: tuple[str, ...]
    limit: int | None


class FakeRelayPool:
    """Scripted relay pool.

    Each relay answers with its stored events matching the query, then EOSE.
    Relays in ``failing`` answer with an ERROR; relays in ``silent`` never
    answer, which keeps the query open until the caller times out or
    closes it. ``delay`` postpones every answer.
    """

    def __init__(self) -> None:
        self._events: dict[str, list[Event]] = defaultdict(list)
        self.failing: set[str] = set()
        self.silent: set[str] = set()
        self.delay: float = 0.0
        self.queries: list[RecordedQuery] = []
        self.closed_queries = 0

    def add(self, relay: str, *events: Event) -> None:
        self._events[normalize_relay_url(relay)].extend(events)

    def _is(self, relay: str, group: set[str]) -> bool:
        return normalize_relay_url(relay) in {normalize_relay_url(r) for r in group}

    async def query(
        self,
        kinds: Sequence[int],
        authors: Sequence[str],
        relays: Sequence[str],
        *,
        limit: int | None = None,
    ) -> AsyncIterator[PoolMessage]:
        self.queries.append(RecordedQuery(tuple(kinds), tuple(authors), tuple(relays), limit))
        try:
            for relay in relays:
                yield PoolMessage.connecting(relay)
            if self.delay:
                await asyncio.sleep(self.delay)

            hang = False
            for relay in relays:
                if self._is(relay, self.failing):
                    yield PoolMessage.failed(relay, "connection refused")
                    continue
                if self._is(relay, self.silent):
                    hang = True
                    continue
                matching = [
                    e
                    for e in self._events[normalize_relay_url(relay)]
                    if e.kind in kinds and e.pubkey in authors
                ]
                if limit is not None:
                    matching = sorted(matching, key=lambda e: e.created_at, reverse=True)[:limit]
                for event in matching:
                    yield PoolMessage.received(relay, event)
                yield PoolMessage.eose(relay)

            if hang:
                await asyncio.Event().wait()
        finally:
            self.closed_queries += 1


@pytest.fixture
def fake_pool() -> FakeRelayPool:
    return FakeRelayPool()
