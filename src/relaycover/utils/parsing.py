"""Tolerant extraction of relays, contacts and profiles from Nostr events.

Every parser is total: malformed tags are skipped and malformed JSON
content yields an empty result for that one event, never an exception.
Relay URLs pointing at loopback or private hosts are dropped at parse
time so they are never queried or displayed.

Two relay-list formats exist:

* **Directory format** (kind 10002): ``["r", url, marker?]`` tags, where
  the optional marker is ``read`` or ``write``.
* **Legacy format** (kind 3): a JSON object in the contact-list content
  mapping each relay URL to ``{"read": bool, "write": bool}``.

[select_relay_source()][relaycover.utils.parsing.select_relay_source]
picks between them: the directory format wins whenever it has been seen.

Examples:
    ```python
    source = select_relay_source(directory=relay_list_event, legacy=contact_event)
    write_relays = [r.url for r in source.descriptors() if r.can_write]
    ```
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from relaycover.models.analysis import RelayDescriptor
from relaycover.models.constants import IDENTITY_HEX_LENGTH
from relaycover.models.profile import Profile
from relaycover.models.relay import parse_relay_endpoint


if TYPE_CHECKING:
    from relaycover.models.event import Event


_HEX_IDENTITY = re.compile(rf"^[0-9a-fA-F]{{{IDENTITY_HEX_LENGTH}}}$")
_SCHEME_PREFIX = re.compile(r"^wss?://")

_MIN_TAG_LENGTH = 2


def _is_queryable(url: str) -> bool:
    return parse_relay_endpoint(url) is not None


def parse_relay_list(event: Event) -> list[RelayDescriptor]:
    """Extract relay descriptors from the ``r`` tags of a directory-format event.

    URLs keep their published spelling; invalid and local URLs are skipped.
    """
    relays: list[RelayDescriptor] = []
    for tag in event.tags:
        if len(tag) < _MIN_TAG_LENGTH or tag[0] != "r" or not tag[1]:
            continue
        url = tag[1]
        if not _is_queryable(url):
            continue
        marker = tag[2] if len(tag) > _MIN_TAG_LENGTH else None
        relays.append(RelayDescriptor.from_marker(url, marker))
    return relays


def parse_legacy_relay_list(event: Event) -> list[RelayDescriptor]:
    """Extract relay descriptors from the JSON content of a contact-list event.

    Entries whose value is not an object are treated as read and write.
    Returns an empty list when the content is not a JSON object.
    """
    if not event.content:
        return []
    try:
        data = json.loads(event.content)
    except (json.JSONDecodeError, TypeError, ValueError):
        return []
    if not isinstance(data, dict):
        return []

    relays: list[RelayDescriptor] = []
    for url, flags in data.items():
        if not isinstance(url, str) or not _is_queryable(url):
            continue
        if isinstance(flags, dict):
            can_read = bool(flags.get("read", True))
            can_write = bool(flags.get("write", True))
        else:
            can_read = can_write = True
        relays.append(RelayDescriptor(url, can_read=can_read, can_write=can_write))
    return relays


def parse_contact_list(event: Event) -> list[str]:
    """Return the followed identities of a contact-list event.

    Reads ``p`` tags in order, keeps valid 64-hex values (lowercased) and
    drops repeats.
    """
    seen: set[str] = set()
    followees: list[str] = []
    for tag in event.tags:
        if len(tag) < _MIN_TAG_LENGTH or tag[0] != "p":
            continue
        value = tag[1].strip()
        if not _HEX_IDENTITY.match(value):
            continue
        pubkey = value.lower()
        if pubkey not in seen:
            seen.add(pubkey)
            followees.append(pubkey)
    return followees


def parse_profile(event: Event) -> Profile:
    """Build a profile from kind-0 JSON content; a bare profile on malformed content."""
    try:
        content: Any = json.loads(event.content)
    except (json.JSONDecodeError, TypeError, ValueError):
        return Profile(pubkey=event.pubkey)
    if not isinstance(content, dict):
        return Profile(pubkey=event.pubkey)
    return Profile.from_dict({**content, "pubkey": event.pubkey})


def merge_profile(current: Profile, update: Profile) -> Profile:
    """Overlay ``update`` on ``current``; fields the update lacks are kept."""
    return Profile(
        pubkey=current.pubkey,
        name=update.name or current.name,
        display_name=update.display_name or current.display_name,
        picture=update.picture or current.picture,
        nip05=update.nip05 or current.nip05,
    )


def format_relay_name(url: str) -> str:
    """Strip the ``ws://`` / ``wss://`` prefix for display."""
    return _SCHEME_PREFIX.sub("", url)


# --- Relay source precedence ---


@dataclass(frozen=True, slots=True)
class DirectorySource:
    """Relays taken from a directory-format (kind 10002) event."""

    event: Event

    def descriptors(self) -> list[RelayDescriptor]:
        return parse_relay_list(self.event)


@dataclass(frozen=True, slots=True)
class LegacySource:
    """Relays taken from the JSON content of a contact-list (kind 3) event."""

    event: Event

    def descriptors(self) -> list[RelayDescriptor]:
        return parse_legacy_relay_list(self.event)


RelaySource = DirectorySource | LegacySource


def select_relay_source(
    directory: Event | None = None,
    legacy: Event | None = None,
) -> RelaySource | None:
    """Pick the relay source of one identity.

    The directory format wins whenever it has been seen. Otherwise the
    legacy format is used, provided its content actually lists relays.
    """
    if directory is not None:
        return DirectorySource(directory)
    if legacy is not None and parse_legacy_relay_list(legacy):
        return LegacySource(legacy)
    return None
