"""
Coverage result records.

[FolloweeAnalysis][relaycover.models.analysis.FolloweeAnalysis] is replaced
wholesale every time fresher relay data or a profile arrives for a followee;
[RelayStatusEntry][relaycover.models.analysis.RelayStatusEntry] tracks one
endpoint for the lifetime of a single analysis run.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from .constants import UNANALYZED_COVERAGE, RelayState
from .profile import Profile


@dataclass(frozen=True, slots=True)
class RelayDescriptor:
    """A relay entry of a relay-list event.

    A tag without a direction marker implies both directions; ``read``
    means read-only and ``write`` means write-only.
    """

    url: str
    can_read: bool = True
    can_write: bool = True

    @classmethod
    def from_marker(cls, url: str, marker: str | None) -> RelayDescriptor:
        """Derive read/write capability from a NIP-65 direction marker."""
        if marker == "read":
            return cls(url, can_read=True, can_write=False)
        if marker == "write":
            return cls(url, can_read=False, can_write=True)
        return cls(url)


@dataclass(frozen=True, slots=True)
class FolloweeAnalysis:
    """Coverage of one followee's write relays by the user's read relays.

    Attributes:
        profile: Followee profile (may be a bare pubkey).
        write_relays: Followee write relays as published.
        readable_relays: Write relays the user reads from.
        unreadable_relays: Write relays the user does not read from.
        coverage: ``len(readable_relays)``, or ``-1`` while unanalyzed.
    """

    profile: Profile
    write_relays: tuple[str, ...] = ()
    readable_relays: tuple[str, ...] = ()
    unreadable_relays: tuple[str, ...] = ()
    coverage: int = UNANALYZED_COVERAGE

    @property
    def pubkey(self) -> str:
        return self.profile.pubkey

    @property
    def is_analyzed(self) -> bool:
        return self.coverage != UNANALYZED_COVERAGE

    @classmethod
    def unanalyzed(cls, profile: Profile) -> FolloweeAnalysis:
        """Seed record for a followee whose relays have not been seen yet."""
        return cls(profile=profile)

    def with_profile(self, profile: Profile) -> FolloweeAnalysis:
        """Return a copy carrying ``profile``; relay fields are untouched."""
        return replace(self, profile=profile)


@dataclass(frozen=True, slots=True)
class RelayStatusEntry:
    """Current state of one endpoint within an analysis run."""

    url: str
    state: RelayState = field(default=RelayState.WAIT)
