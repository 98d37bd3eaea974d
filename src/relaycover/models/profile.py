"""User profile metadata extracted from kind-0 events."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Profile:
    """Display metadata for one identity.

    Only ``pubkey`` is required; every other field is ``None`` until a
    profile event (or the profile cache) supplies it.
    """

    pubkey: str
    name: str | None = None
    display_name: str | None = None
    picture: str | None = None
    nip05: str | None = None

    @property
    def is_missing(self) -> bool:
        """True when nothing displayable is known (no name, display name or picture)."""
        return not (self.name or self.display_name or self.picture)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict, dropping unset fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        """Rebuild a profile, ignoring unknown keys and non-string values.

        Raises:
            ValueError: If ``pubkey`` is missing or not a string.
        """
        pubkey = data.get("pubkey")
        if not isinstance(pubkey, str) or not pubkey:
            raise ValueError("Profile requires a pubkey")

        def _text(key: str) -> str | None:
            value = data.get(key)
            return value if isinstance(value, str) else None

        return cls(
            pubkey=pubkey,
            name=_text("name"),
            display_name=_text("display_name"),
            picture=_text("picture"),
            nip05=_text("nip05"),
        )
