"""Shared constants for the models layer.

Defines enumerations used across multiple model modules. Placing them here
avoids circular dependencies between the models, core and services layers.

See Also:
    [relaycover.models.relay][]: Uses [NetworkType][relaycover.models.constants.NetworkType]
        to classify relay URLs during construction.
    [relaycover.core.session][]: Drives [RelayState][relaycover.models.constants.RelayState]
        transitions for every queried endpoint.
    [relaycover.services.coverage][]: Walks the
        [AnalysisPhase][relaycover.models.constants.AnalysisPhase] state machine.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class NetworkType(StrEnum):
    """Network type enum for relay classification.

    Each relay URL is classified into exactly one network type during
    [RelayEndpoint][relaycover.models.relay.RelayEndpoint] construction.

    Attributes:
        CLEARNET: Public internet relay.
        TOR: Tor hidden service identified by a ``.onion`` hostname.
        I2P: I2P eepsite identified by a ``.i2p`` hostname.
        LOKI: Lokinet service identified by a ``.loki`` hostname.
        LOCAL: Loopback, private or reserved address (rejected).
        UNKNOWN: Hostname that could not be classified (rejected).

    Warning:
        ``LOCAL`` and ``UNKNOWN`` cause endpoint construction to raise
        ``ValueError``. They exist for internal detection logic and are
        never exposed on a successfully constructed instance.
    """

    CLEARNET = "clearnet"
    TOR = "tor"
    I2P = "i2p"
    LOKI = "loki"
    LOCAL = "local"
    UNKNOWN = "unknown"


class EventKind(IntEnum):
    """Nostr event kinds consumed by the coverage engine.

    Attributes:
        SET_METADATA: Kind 0 -- user profile metadata (NIP-01).
        CONTACTS: Kind 3 -- contact list, optionally carrying the legacy
            JSON relay map in its content (NIP-02).
        RELAY_LIST: Kind 10002 -- directory-format relay list (NIP-65).
    """

    SET_METADATA = 0
    CONTACTS = 3
    RELAY_LIST = 10_002


class RelayState(StrEnum):
    """Per-endpoint status shown while an analysis run is in flight.

    ``WAIT`` is the initial state of every endpoint at the start of a run.
    ``EOSE``, ``TIMEOUT`` and ``ERROR`` are terminal for a single
    subscription session; a later session against the same endpoint may
    move it back to ``CONNECTING``.
    """

    WAIT = "wait"
    CONNECTING = "connecting"
    LOADING = "loading"
    EOSE = "eose"
    TIMEOUT = "timeout"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Whether a session has stopped expecting messages from the endpoint."""
        return self in (RelayState.EOSE, RelayState.TIMEOUT, RelayState.ERROR)


class AnalysisPhase(StrEnum):
    """Lifecycle of one load/analyze operation.

    ``IDLE -> LOADING_USER_DATA -> LOADING_FOLLOWEES -> READY -> ANALYZING -> COMPLETE``

    A missing contact list sends ``LOADING_FOLLOWEES`` straight back to
    ``IDLE``. A new load request abandons whatever phase is current.
    """

    IDLE = "idle"
    LOADING_USER_DATA = "loading_user_data"
    LOADING_FOLLOWEES = "loading_followees"
    READY = "ready"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


IDENTITY_HEX_LENGTH = 64
UNANALYZED_COVERAGE = -1
