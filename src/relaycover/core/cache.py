"""
Persistent profile cache.

Profiles are kept in memory keyed by identity and, when a path is
configured, persisted as a single JSON object. Writes are coalesced: every
[put()][relaycover.core.cache.ProfileCache.put] schedules one deferred flush
``flush_interval`` seconds later unless a flush is already pending.

Cache failures never affect analysis: an unreadable file loads as empty
and a failed write is logged at WARNING.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from relaycover.models.profile import Profile


if TYPE_CHECKING:
    from collections.abc import Iterable


DEFAULT_FLUSH_INTERVAL = 0.5

logger = logging.getLogger(__name__)


class ProfileCache:
    """Identity to [Profile][relaycover.models.profile.Profile] store.

    Args:
        path: JSON file backing the cache; ``None`` keeps it in memory only.
        flush_interval: Seconds a write is deferred to coalesce bursts.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._flush_interval = flush_interval
        self._profiles: dict[str, Profile] = {}
        self._pending: asyncio.TimerHandle | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, pubkey: object) -> bool:
        return pubkey in self._profiles

    def load(self) -> int:
        """Read the backing file into memory; return the number of profiles loaded."""
        if self._path is None or not self._path.exists():
            return 0
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("profile_cache_load_failed path=%s error=%s", self._path, e)
            return 0
        if not isinstance(data, dict):
            logger.warning("profile_cache_load_failed path=%s error=not a mapping", self._path)
            return 0

        loaded = 0
        for pubkey, entry in data.items():
            if not isinstance(entry, dict):
                continue
            try:
                self._profiles[pubkey] = Profile.from_dict({**entry, "pubkey": pubkey})
            except ValueError:
                continue
            loaded += 1
        logger.debug("profile_cache_loaded path=%s count=%s", self._path, loaded)
        return loaded

    def get(self, pubkey: str) -> Profile | None:
        return self._profiles.get(pubkey)

    def get_many(self, pubkeys: Iterable[str]) -> dict[str, Profile]:
        """Return the cached profiles among ``pubkeys``; misses are omitted."""
        return {pk: self._profiles[pk] for pk in pubkeys if pk in self._profiles}

    def put(self, profile: Profile) -> None:
        """Store ``profile`` and schedule a coalesced flush."""
        self._profiles[profile.pubkey] = profile
        if self._path is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        if self._pending is None:
            self._pending = loop.call_later(self._flush_interval, self.flush)

    def flush(self) -> bool:
        """Write every profile to the backing file now.

        Returns:
            True if the file was written.
        """
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._path is None:
            return False

        payload = {
            pubkey: {k: v for k, v in profile.to_dict().items() if k != "pubkey"}
            for pubkey, profile in self._profiles.items()
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.warning("profile_cache_write_failed path=%s error=%s", self._path, e)
            return False
        logger.debug("profile_cache_flushed path=%s count=%s", self._path, len(payload))
        return True
