"""relaycover exception hierarchy.

Typed exceptions let the core layer distinguish configuration mistakes,
relay transport failures, and malformed protocol payloads, while
``asyncio.CancelledError`` always propagates untouched.

Exception hierarchy:

```text
RelayCoverError (base -- never raised directly)
├── ConfigurationError      -- config validation, missing keys, bad YAML
├── ConnectivityError        -- relay unreachable, connection rejected
└── ProtocolError            -- relay payload is not a usable Nostr event
```

Note:
    None of these cross into the aggregation driver's callers. The relay
    pool converts connectivity errors into ``ERROR`` pool messages and
    skips events that raise ``ProtocolError``; the driver only reports
    failures through status messages and relay-status entries.
"""

from __future__ import annotations


class RelayCoverError(Exception):
    """Base exception for all relaycover errors. Never raised directly."""


class ConfigurationError(RelayCoverError):
    """Invalid or missing configuration (YAML, CLI flags)."""


class ConnectivityError(RelayCoverError):
    """Relay could not be reached or rejected the connection.

    Attributes:
        relay: Endpoint URL the failure is attributed to.
    """

    def __init__(self, relay: str, message: str) -> None:
        super().__init__(f"{relay}: {message}")
        self.relay = relay


class ProtocolError(RelayCoverError):
    """Relay delivered a payload that is not a usable Nostr event."""
