"""
Per-relay failure accounting.

Every transport-level error or rejection reported by the relay pool is
recorded against the endpoint's normalized URL. Once an endpoint reaches
the failure threshold it is filtered out of every later subscription.

Note:
    This is advisory exclusion, not a circuit breaker: there is no
    half-open retry. An excluded endpoint stays excluded for the lifetime
    of the tracker unless [reset()][relaycover.core.health.RelayHealthTracker.reset]
    is called explicitly.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from relaycover.models.relay import normalize_relay_url


if TYPE_CHECKING:
    from collections.abc import Iterable


DEFAULT_FAILURE_THRESHOLD = 3

logger = logging.getLogger(__name__)


class RelayHealthTracker:
    """Counts failures per endpoint and filters out unhealthy ones.

    Examples:
        ```python
        health = RelayHealthTracker()
        for _ in range(3):
            health.record_failure("wss://flaky.example.com/")
        health.filter_healthy(["wss://FLAKY.example.com", "wss://nos.lol"])
        # ['wss://nos.lol']
        ```
    """

    __slots__ = ("_failures", "_threshold")

    def __init__(self, threshold: int = DEFAULT_FAILURE_THRESHOLD) -> None:
        if threshold < 1:
            raise ValueError(f"Failure threshold must be >= 1, got {threshold}")
        self._threshold = threshold
        self._failures: Counter[str] = Counter()

    @property
    def threshold(self) -> int:
        return self._threshold

    def record_failure(self, endpoint: str) -> None:
        """Increment the failure counter of ``endpoint``."""
        key = normalize_relay_url(endpoint)
        self._failures[key] += 1
        count = self._failures[key]
        if count == self._threshold:
            logger.info("relay_excluded relay=%s failures=%s", key, count)
        else:
            logger.debug("relay_failure_recorded relay=%s failures=%s", key, count)

    def failures(self, endpoint: str) -> int:
        """Current failure count of ``endpoint``."""
        return self._failures.get(normalize_relay_url(endpoint), 0)

    def is_healthy(self, endpoint: str) -> bool:
        return self.failures(endpoint) < self._threshold

    def filter_healthy(self, endpoints: Iterable[str]) -> list[str]:
        """Return the endpoints below the failure threshold, in input order."""
        return [e for e in endpoints if self.is_healthy(e)]

    def reset(self) -> None:
        """Forget every recorded failure."""
        self._failures.clear()
