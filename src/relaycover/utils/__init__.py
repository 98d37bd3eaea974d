"""Identity codecs and event parsers.

The utils layer depends only on [relaycover.models][relaycover.models]
and ``nostr_sdk``; it has **zero** imports from ``relaycover.core`` or
``relaycover.services``.

Attributes:
    identity: Conversion between canonical hex identities and NIP-19 ``npub``.
    parsing: Total parsers for relay lists (directory and legacy formats),
        contact lists and profiles, plus relay-source precedence.
"""

from .identity import decode_identity, encode_identity, is_hex_identity
from .parsing import (
    DirectorySource,
    LegacySource,
    RelaySource,
    format_relay_name,
    merge_profile,
    parse_contact_list,
    parse_legacy_relay_list,
    parse_profile,
    parse_relay_list,
    select_relay_source,
)


__all__ = [
    "DirectorySource",
    "LegacySource",
    "RelaySource",
    "decode_identity",
    "encode_identity",
    "format_relay_name",
    "is_hex_identity",
    "merge_profile",
    "parse_contact_list",
    "parse_legacy_relay_list",
    "parse_profile",
    "parse_relay_list",
    "select_relay_source",
]
