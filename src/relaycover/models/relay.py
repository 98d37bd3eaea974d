"""
Validated Nostr relay endpoint with network type detection.

Parses and validates WebSocket relay URLs (``ws://`` or ``wss://``) taken
from untrusted relay-list events, detecting the network type (clearnet,
Tor, I2P, Lokinet). Loopback and private-network hosts are rejected so
they are never queried or displayed.

Two endpoints are the same relay iff their
[normalize_relay_url()][relaycover.models.relay.normalize_relay_url]
forms are equal. The raw form is kept for display because coverage
results report relays exactly as the followee published them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator

from .constants import NetworkType


def normalize_relay_url(url: str) -> str:
    """Return the comparison key for a relay URL.

    Lowercases, trims surrounding whitespace and strips trailing slashes.
    Used for map keys, health-tracker keys and coverage set membership.

    Examples:
        ```python
        normalize_relay_url(" WSS://Relay.Damus.io/ ")  # 'wss://relay.damus.io'
        ```
    """
    return url.strip().lower().rstrip("/")


@dataclass(frozen=True, slots=True)
class RelayEndpoint:
    """Immutable, validated relay endpoint.

    Attributes:
        raw_url: URL exactly as it appeared in the source event (trimmed).
        url: Normalized comparison key (see ``normalize_relay_url``).
        network: Detected ``NetworkType`` enum value.
        scheme: URL scheme (``ws`` or ``wss``).
        host: Hostname or IP address (brackets stripped for IPv6).

    Raises:
        ValueError: If the URL is malformed, uses an unsupported scheme,
            resolves to a local/private address, or contains null bytes.

    Examples:
        ```python
        endpoint = RelayEndpoint("wss://Relay.Damus.io/")
        endpoint.raw_url   # 'wss://Relay.Damus.io/'
        endpoint.url       # 'wss://relay.damus.io'
        endpoint.network   # NetworkType.CLEARNET

        RelayEndpoint("ws://127.0.0.1:7777")  # ValueError: Local addresses not allowed
        ```
    """

    raw_url: str
    url: str = field(init=False)
    network: NetworkType = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)

    _NETWORK_TLDS: ClassVar[dict[str, NetworkType]] = {
        ".onion": NetworkType.TOR,
        ".i2p": NetworkType.I2P,
        ".loki": NetworkType.LOKI,
    }

    # IANA private/reserved IP ranges used to reject local addresses.
    _LOCAL_NETWORKS: ClassVar[list[IPv4Network | IPv6Network]] = [
        ip_network("0.0.0.0/8"),
        ip_network("10.0.0.0/8"),
        ip_network("100.64.0.0/10"),
        ip_network("127.0.0.0/8"),
        ip_network("169.254.0.0/16"),
        ip_network("172.16.0.0/12"),
        ip_network("192.0.0.0/24"),
        ip_network("192.168.0.0/16"),
        ip_network("198.18.0.0/15"),
        ip_network("224.0.0.0/4"),
        ip_network("240.0.0.0/4"),
        ip_network("::1/128"),
        ip_network("::/128"),
        ip_network("::ffff:0:0/96"),
        ip_network("fc00::/7"),
        ip_network("fe80::/10"),
        ip_network("ff00::/8"),
    ]

    def __post_init__(self) -> None:
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        raw = self.raw_url.strip()
        scheme, host = self._parse(raw)
        network = self._detect_network(host)

        if network == NetworkType.LOCAL:
            raise ValueError("Local addresses not allowed")
        if network == NetworkType.UNKNOWN:
            raise ValueError(f"Invalid host: '{host}'")

        object.__setattr__(self, "raw_url", raw)
        object.__setattr__(self, "url", normalize_relay_url(raw))
        object.__setattr__(self, "network", network)
        object.__setattr__(self, "scheme", scheme)
        object.__setattr__(self, "host", host)

    @staticmethod
    def _parse(raw: str) -> tuple[str, str]:
        """Validate URI structure and return ``(scheme, host)``.

        Raises:
            ValueError: If the scheme is not ``ws``/``wss`` or the URI is invalid.
        """
        uri = uri_reference(raw).normalize()
        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port")
        )
        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError("Invalid scheme: must be ws or wss") from None
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {e}") from None

        return uri.scheme, uri.host.strip("[]")

    @staticmethod
    def _detect_network(host: str) -> NetworkType:
        """Classify a hostname into a network type.

        Checks overlay network TLDs first, then local/private IP ranges,
        and finally validates standard domain name labels.
        """
        if not host:
            return NetworkType.UNKNOWN

        host_bare = host.lower().strip("[]")

        for tld, network in RelayEndpoint._NETWORK_TLDS.items():
            if host_bare.endswith(tld):
                return network

        if host_bare in ("localhost", "localhost.localdomain") or host_bare.endswith(".local"):
            return NetworkType.LOCAL

        try:
            ip = ip_address(host_bare)
            is_local = any(ip in net for net in RelayEndpoint._LOCAL_NETWORKS)
            return NetworkType.LOCAL if is_local else NetworkType.CLEARNET
        except ValueError:
            pass

        if "." not in host_bare:
            return NetworkType.UNKNOWN

        labels = host_bare.split(".")
        valid = all(
            label and not label.startswith("-") and not label.endswith("-") for label in labels
        )
        return NetworkType.CLEARNET if valid else NetworkType.UNKNOWN


def parse_relay_endpoint(url: str) -> RelayEndpoint | None:
    """Build a ``RelayEndpoint`` or return ``None`` for rejected URLs."""
    try:
        return RelayEndpoint(url)
    except (ValueError, TypeError, AttributeError):
        return None
