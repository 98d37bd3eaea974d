"""Identity decoding and encoding between canonical hex and NIP-19 ``npub``.

Examples:
    ```python
    decode_identity("npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg")
    # '7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e'
    decode_identity("not a key")  # None
    ```
"""

from __future__ import annotations

import re

from nostr_sdk import PublicKey

from relaycover.models.constants import IDENTITY_HEX_LENGTH


NPUB_PREFIX = "npub1"

_HEX_IDENTITY = re.compile(rf"^[0-9a-fA-F]{{{IDENTITY_HEX_LENGTH}}}$")


def is_hex_identity(value: str) -> bool:
    """True if ``value`` is exactly 64 hex characters (any case)."""
    return bool(_HEX_IDENTITY.match(value))


def decode_identity(value: str | None) -> str | None:
    """Return the canonical lowercase hex identity for ``value``, or None.

    Accepts the 64-hex form (case-insensitive) or a bech32 ``npub``.
    Surrounding whitespace is ignored. Never raises.
    """
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if is_hex_identity(candidate):
        return candidate.lower()
    if not candidate.lower().startswith(NPUB_PREFIX):
        return None
    try:
        return PublicKey.parse(candidate).to_hex()
    except Exception:  # nostr-sdk Rust FFI can raise arbitrary exception types
        return None


def encode_identity(pubkey: str) -> str:
    """Return the ``npub`` form of a hex identity, or ``pubkey`` unchanged if it cannot be encoded."""
    try:
        return PublicKey.parse(pubkey).to_bech32()
    except Exception:  # nostr-sdk Rust FFI can raise arbitrary exception types
        return pubkey
