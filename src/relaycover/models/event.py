"""
Immutable Nostr event record.

Events arrive from relays as untrusted payloads. No signature check is
performed; construction only validates the shape of the fields the
coverage engine consumes (``pubkey``, ``created_at``, ``kind``, ``tags``,
``content``) so that malformed payloads never reach the deduplicator.

See Also:
    [relaycover.core.pool][]: Converts relay payloads into this model.
    [relaycover.core.dedup][]: Keeps the newest event per ``(pubkey, kind)``.
    [relaycover.utils.parsing][]: Extracts relays, contacts and profiles.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from .constants import IDENTITY_HEX_LENGTH


_HEX_IDENTITY = re.compile(rf"^[0-9a-f]{{{IDENTITY_HEX_LENGTH}}}$")


@dataclass(frozen=True, slots=True)
class Event:
    """Opaque Nostr event.

    Attributes:
        id: Event ID as hex.
        pubkey: Author identity, canonical lowercase 64-char hex.
        created_at: Unix timestamp in seconds.
        kind: Integer event kind.
        tags: Ordered tuple of tags, each a tuple of strings.
        content: Raw content string.
        sig: Signature as hex (carried, never verified).

    Raises:
        ValueError: If ``pubkey`` is not 64 hex characters, ``created_at``
            or ``kind`` are negative or non-integer, or a tag is not a list
            of strings.

    Examples:
        ```python
        event = Event.from_dict({
            "id": "ab" * 32,
            "pubkey": "CD" * 32,
            "created_at": 1700000000,
            "kind": 10002,
            "tags": [["r", "wss://relay.damus.io"]],
            "content": "",
            "sig": "ef" * 64,
        })
        event.pubkey  # 'cdcd...' (lowercased)
        event.key     # ('cdcd...', 10002)
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str
    sig: str = ""

    def __post_init__(self) -> None:
        pubkey = self.pubkey.lower() if isinstance(self.pubkey, str) else self.pubkey
        if not isinstance(pubkey, str) or not _HEX_IDENTITY.match(pubkey):
            raise ValueError(f"Invalid event pubkey: {self.pubkey!r}")
        object.__setattr__(self, "pubkey", pubkey)

        for name in ("created_at", "kind"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"Invalid event {name}: {value!r}")

        if not isinstance(self.content, str):
            raise ValueError("Event content must be a string")

        tags: list[tuple[str, ...]] = []
        for tag in self.tags:
            if not isinstance(tag, list | tuple) or not all(isinstance(v, str) for v in tag):
                raise ValueError(f"Invalid event tag: {tag!r}")
            tags.append(tuple(tag))
        object.__setattr__(self, "tags", tuple(tags))

    @property
    def key(self) -> tuple[str, int]:
        """Deduplication key: ``(pubkey, kind)``."""
        return self.pubkey, self.kind

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Build an event from a NIP-01 JSON object.

        Raises:
            ValueError: If required keys are missing or malformed.
        """
        if not isinstance(data, dict):
            raise ValueError("Event payload must be a JSON object")
        try:
            return cls(
                id=str(data.get("id", "")),
                pubkey=data["pubkey"],
                created_at=data["created_at"],
                kind=data["kind"],
                tags=tuple(data.get("tags") or ()),
                content=data.get("content", ""),
                sig=str(data.get("sig", "")),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed event payload: {e}") from None

    @classmethod
    def from_json(cls, raw: str) -> Event:
        """Build an event from its NIP-01 JSON serialization.

        Raises:
            ValueError: If ``raw`` is not valid JSON or not a valid event.
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise ValueError(f"Invalid event JSON: {e}") from None
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }
