"""Newest-event-wins deduplication per ``(identity, kind)``."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from relaycover.models.event import Event


class EventDeduplicator:
    """Retains the most recent event of each ``(pubkey, kind)`` pair.

    A candidate replaces the retained event only when its ``created_at`` is
    strictly greater; ties keep the first-seen event. Arrival order across
    relays and batches therefore never changes the outcome.

    Examples:
        ```python
        dedup = EventDeduplicator()
        dedup.offer(old)    # True  (first event for the pair)
        dedup.offer(new)    # True  (newer)
        dedup.offer(old)    # False (stale, dropped silently)
        dedup.latest(new.pubkey, new.kind) is new  # True
        ```
    """

    __slots__ = ("_latest",)

    def __init__(self) -> None:
        self._latest: dict[tuple[str, int], Event] = {}

    def offer(self, event: Event) -> bool:
        """Consider ``event``; return True if it became the new best for its pair."""
        current = self._latest.get(event.key)
        if current is not None and event.created_at <= current.created_at:
            return False
        self._latest[event.key] = event
        return True

    def latest(self, pubkey: str, kind: int) -> Event | None:
        return self._latest.get((pubkey, kind))

    def __len__(self) -> int:
        return len(self._latest)

    def clear(self) -> None:
        self._latest.clear()
