"""
Time-bounded subscription of one identity batch against a relay subset.

A [SubscriptionSession][relaycover.core.session.SubscriptionSession] opens a
single pool query, routes every incoming event through an
[EventDeduplicator][relaycover.core.dedup.EventDeduplicator], and forwards
new-best events to its caller as they arrive. Each endpoint independently
ends as ``EOSE``, ``TIMEOUT`` or ``ERROR``:

* ``ERROR`` -- the pool reported a transport failure; the endpoint's
  failure is recorded in the [RelayHealthTracker][relaycover.core.health.RelayHealthTracker].
  Other endpoints of the batch are unaffected. Endpoints already at the
  failure threshold are not queried and report ``ERROR`` immediately.
* ``TIMEOUT`` -- the overall session timeout elapsed before the endpoint
  reported completion.
* ``EOSE`` -- the endpoint reported end of stored events, or the pool
  signalled completion for the whole query.

The session finishes when every endpoint is terminal, when the pool
stream ends, or when the timeout elapses, whichever comes first, and it
produces exactly one finish signal. A cancelled session never invokes its
callbacks again.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from relaycover.models.constants import RelayState
from relaycover.models.relay import normalize_relay_url

from .dedup import EventDeduplicator
from .pool import DEFAULT_TIMEOUT, PoolMessageType


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from relaycover.models.event import Event

    from .health import RelayHealthTracker
    from .pool import PoolMessage, RelayPool


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Outcome of one session.

    Attributes:
        relay_states: Final state of every queried endpoint.
        timed_out: Whether the overall timeout forced completion.
        cancelled: Whether the session was cancelled before finishing.
        accepted: Number of new-best events forwarded to the caller.
        duration: Wall time in seconds.
    """

    relay_states: dict[str, RelayState]
    timed_out: bool
    cancelled: bool
    accepted: int
    duration: float

    def relays_in(self, state: RelayState) -> list[str]:
        return [url for url, s in self.relay_states.items() if s == state]


class SubscriptionSession:
    """One outstanding query for one batch of identities.

    Args:
        pool: Relay pool the query is issued to.
        authors: Identity batch (canonical hex).
        relays: Candidate endpoints; unhealthy ones are not queried and are
            reported as ``ERROR`` at start.
        kinds: Requested event kinds.
        timeout: Overall session timeout in seconds.
        limit: Optional per-query event limit.
        deduplicator: Shared newest-wins store; a private one by default.
        health: Failure tracker consulted at start and fed on errors.
        on_event: Called with ``(event, relay)`` for every new-best event.
        on_relay_state: Called with ``(relay, state)`` on every transition.
        on_finish: Called once with the [SessionResult][relaycover.core.session.SessionResult].
    """

    def __init__(
        self,
        pool: RelayPool,
        authors: Sequence[str],
        relays: Iterable[str],
        kinds: Sequence[int],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        limit: int | None = None,
        deduplicator: EventDeduplicator | None = None,
        health: RelayHealthTracker | None = None,
        on_event: Callable[[Event, str], None] | None = None,
        on_relay_state: Callable[[str, RelayState], None] | None = None,
        on_finish: Callable[[SessionResult], None] | None = None,
    ) -> None:
        self._pool = pool
        self._authors = list(authors)
        self._author_set = set(self._authors)
        self._candidates = list(relays)
        self._kinds = list(kinds)
        self._timeout = timeout
        self._limit = limit
        self._dedup = deduplicator if deduplicator is not None else EventDeduplicator()
        self._health = health
        self._on_event = on_event
        self._on_relay_state = on_relay_state
        self._on_finish = on_finish

        self._states: dict[str, RelayState] = {}
        self._index: dict[str, str] = {}
        self._accepted = 0
        self._started = False
        self._cancelled = False
        self._result: SessionResult | None = None
        self._started_at = 0.0

    @property
    def relays(self) -> list[str]:
        """Endpoints actually queried (available once ``run()`` started)."""
        return list(self._states)

    @property
    def finished(self) -> bool:
        return self._result is not None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop forwarding anything to the callbacks.

        The owner is expected to cancel the task awaiting ``run()`` as well,
        which closes the pool stream and releases its transport resources.
        """
        self._cancelled = True

    async def run(self) -> SessionResult:
        """Issue the query and consume it until the session finishes.

        Raises:
            RuntimeError: If the session was already started.
        """
        if self._started:
            raise RuntimeError("Subscription session already started")
        self._started = True
        self._started_at = time.monotonic()

        selected, excluded = self._select_relays()
        for url in selected:
            self._states[url] = RelayState.WAIT
            self._index[normalize_relay_url(url)] = url
        for url in excluded:
            self._notify_state(url, RelayState.ERROR)

        if not self._states or not self._authors or not self._kinds:
            return self._finish(timed_out=False)

        logger.debug(
            "session_started authors=%s relays=%s kinds=%s",
            len(self._authors),
            len(self._states),
            self._kinds,
        )

        timed_out = False
        try:
            async with asyncio.timeout(self._timeout):
                stream = self._pool.query(
                    self._kinds, self._authors, list(self._states), limit=self._limit
                )
                async with contextlib.aclosing(stream):
                    async for message in stream:
                        if self._cancelled:
                            break
                        self._handle(message)
                        if self._all_terminal():
                            break
        except TimeoutError:
            timed_out = True
        except asyncio.CancelledError:
            self._cancelled = True
            raise

        return self._finish(timed_out=timed_out)

    def _select_relays(self) -> tuple[list[str], list[str]]:
        """Split candidates into healthy endpoints to query and excluded ones.

        Duplicate spellings of the same relay are dropped from both lists.
        """
        seen: set[str] = set()
        selected: list[str] = []
        excluded: list[str] = []
        for url in self._candidates:
            key = normalize_relay_url(url)
            if key in seen:
                continue
            seen.add(key)
            if self._health is not None and not self._health.is_healthy(url):
                excluded.append(url)
            else:
                selected.append(url)
        return selected, excluded

    def _handle(self, message: PoolMessage) -> None:
        url = self._index.get(normalize_relay_url(message.relay))
        if url is None or self._states[url].is_terminal:
            return

        if message.type is PoolMessageType.CONNECTING:
            self._set_state(url, RelayState.CONNECTING)

        elif message.type is PoolMessageType.EVENT:
            if self._states[url] is not RelayState.LOADING:
                self._set_state(url, RelayState.LOADING)
            event = message.event
            if event is None or event.kind not in self._kinds:
                return
            if event.pubkey not in self._author_set:
                return
            if self._dedup.offer(event):
                self._accepted += 1
                if self._on_event is not None:
                    self._on_event(event, url)

        elif message.type is PoolMessageType.EOSE:
            self._set_state(url, RelayState.EOSE)

        elif message.type is PoolMessageType.ERROR:
            if self._health is not None:
                self._health.record_failure(url)
            logger.debug("session_relay_error relay=%s error=%s", url, message.error)
            self._set_state(url, RelayState.ERROR)

    def _set_state(self, url: str, state: RelayState) -> None:
        self._states[url] = state
        self._notify_state(url, state)

    def _notify_state(self, url: str, state: RelayState) -> None:
        if not self._cancelled and self._on_relay_state is not None:
            self._on_relay_state(url, state)

    def _all_terminal(self) -> bool:
        return all(state.is_terminal for state in self._states.values())

    def _finish(self, *, timed_out: bool) -> SessionResult:
        """Settle pending endpoints and emit the single finish signal."""
        if self._result is not None:
            return self._result

        if not self._cancelled:
            pending_state = RelayState.TIMEOUT if timed_out else RelayState.EOSE
            for url, state in list(self._states.items()):
                if not state.is_terminal:
                    self._set_state(url, pending_state)

        self._result = SessionResult(
            relay_states=dict(self._states),
            timed_out=timed_out,
            cancelled=self._cancelled,
            accepted=self._accepted,
            duration=time.monotonic() - self._started_at,
        )
        logger.debug(
            "session_finished relays=%s accepted=%s timed_out=%s cancelled=%s",
            len(self._states),
            self._accepted,
            timed_out,
            self._cancelled,
        )
        if not self._cancelled and self._on_finish is not None:
            self._on_finish(self._result)
        return self._result


async def fetch_latest(
    pool: RelayPool,
    pubkey: str,
    kind: int,
    relays: Iterable[str],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    limit: int | None = 3,
    health: RelayHealthTracker | None = None,
    on_relay_state: Callable[[str, RelayState], None] | None = None,
) -> Event | None:
    """Return the newest ``kind`` event of ``pubkey`` across ``relays``, if any.

    A batch-of-one specialization of
    [SubscriptionSession][relaycover.core.session.SubscriptionSession].
    """
    dedup = EventDeduplicator()
    session = SubscriptionSession(
        pool,
        [pubkey],
        relays,
        [kind],
        timeout=timeout,
        limit=limit,
        deduplicator=dedup,
        health=health,
        on_relay_state=on_relay_state,
    )
    await session.run()
    return dedup.latest(pubkey, kind)
