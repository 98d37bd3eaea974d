"""Pure frozen dataclasses with zero I/O for relays, events, profiles and coverage results.

The models layer is the foundation of the diamond DAG. It has **no
dependencies** on any other relaycover package. Every model uses
``@dataclass(frozen=True, slots=True)``; all validation happens in
``__post_init__`` so invalid instances never escape the constructor.

Attributes:
    RelayEndpoint: Validated relay URL with RFC 3986 parsing and automatic
        [NetworkType][relaycover.models.constants.NetworkType] detection.
        Rejects loopback and private addresses.
    Event: Opaque, shape-validated Nostr event record.
    Profile: Display metadata for an identity.
    RelayDescriptor: Relay-list entry with read/write capability.
    FolloweeAnalysis: Per-followee coverage result.
    RelayStatusEntry: Per-endpoint state within an analysis run.
"""

from .analysis import FolloweeAnalysis, RelayDescriptor, RelayStatusEntry
from .constants import (
    IDENTITY_HEX_LENGTH,
    UNANALYZED_COVERAGE,
    AnalysisPhase,
    EventKind,
    NetworkType,
    RelayState,
)
from .event import Event
from .profile import Profile
from .relay import RelayEndpoint, normalize_relay_url, parse_relay_endpoint


__all__ = [
    "IDENTITY_HEX_LENGTH",
    "UNANALYZED_COVERAGE",
    "AnalysisPhase",
    "Event",
    "EventKind",
    "FolloweeAnalysis",
    "NetworkType",
    "Profile",
    "RelayDescriptor",
    "RelayEndpoint",
    "RelayState",
    "RelayStatusEntry",
    "normalize_relay_url",
    "parse_relay_endpoint",
]
