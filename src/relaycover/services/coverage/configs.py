"""Coverage driver configuration models.

Examples:
    ```yaml
    bootstrap_relays:
      - wss://relay.damus.io
      - wss://nos.lol
    timeouts:
      fetch: 7.0
    batch:
      size: 50
      max_concurrent: 4
    profiles:
      cache_path: ~/.cache/relaycover/profiles.json
    sources:
      use_legacy_format: true
    ```

See Also:
    [FolloweeCoverage][relaycover.services.coverage.FolloweeCoverage]: The
        driver that consumes these configurations.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from relaycover.core.health import DEFAULT_FAILURE_THRESHOLD
from relaycover.core.metrics import MetricsConfig
from relaycover.core.pool import DEFAULT_TIMEOUT
from relaycover.core.scheduler import DEFAULT_BATCH_SIZE, DEFAULT_MAX_CONCURRENT
from relaycover.models.constants import EventKind
from relaycover.models.relay import parse_relay_endpoint


BOOTSTRAP_RELAYS: tuple[str, ...] = (
    "wss://relay.damus.io",
    "wss://directory.yabu.me",
    "wss://yabu.me",
    "wss://purplepag.es",
    "wss://indexer.coracle.social",
    "wss://temp.iris.to",
    "wss://relay.snort.social",
    "wss://relay.nostr.band",
    "wss://nos.lol",
    "wss://nostr.wine",
)


class TimeoutsConfig(BaseModel):
    """Relay round-trip bounds."""

    fetch: float = Field(
        default=DEFAULT_TIMEOUT,
        gt=0.0,
        le=120.0,
        description="Seconds allowed for one relay fetch or subscription session",
    )


class LimitsConfig(BaseModel):
    events_per_fetch: int = Field(
        default=3, ge=1, le=500, description="Max events requested by a single-identity fetch"
    )


class BatchConfig(BaseModel):
    """Followee batching.

    ``size`` identities share one subscription; at most
    ``max_concurrent`` subscriptions are in flight at once.
    """

    size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, le=1000, description="Identities per batch")
    max_concurrent: int = Field(
        default=DEFAULT_MAX_CONCURRENT, ge=1, le=64, description="Batches in flight"
    )


class HealthConfig(BaseModel):
    failure_threshold: int = Field(
        default=DEFAULT_FAILURE_THRESHOLD,
        ge=1,
        description="Failures after which a relay is excluded",
    )


class ProfilesConfig(BaseModel):
    """Profile phase and persistent profile cache."""

    fetch_missing: bool = Field(
        default=True,
        description="Fetch kind-0 from a followee's write relays when its profile is empty",
    )
    cache_path: str | None = Field(
        default=None, description="JSON file backing the profile cache (None = memory only)"
    )
    flush_interval: float = Field(
        default=0.5, gt=0.0, le=60.0, description="Seconds cache writes are coalesced"
    )


class SourceFlags(BaseModel):
    """Relay-list formats consulted by an analysis run.

    At least one format should be enabled; with both disabled the run
    completes without analyzing anyone.
    """

    use_directory_format: bool = Field(default=True, description="Use kind-10002 relay lists")
    use_legacy_format: bool = Field(
        default=False, description="Fall back to relay maps in kind-3 content"
    )

    @property
    def kinds(self) -> list[int]:
        kinds: list[int] = []
        if self.use_directory_format:
            kinds.append(EventKind.RELAY_LIST)
        if self.use_legacy_format:
            kinds.append(EventKind.CONTACTS)
        return kinds


class CoverageConfig(BaseModel):
    """Configuration for the [FolloweeCoverage][relaycover.services.coverage.FolloweeCoverage] driver."""

    bootstrap_relays: list[str] = Field(
        default_factory=lambda: list(BOOTSTRAP_RELAYS),
        min_length=1,
        description="Relays always queried in addition to the user's own",
    )
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    profiles: ProfilesConfig = Field(default_factory=ProfilesConfig)
    sources: SourceFlags = Field(default_factory=SourceFlags)
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus metrics configuration",
    )

    @field_validator("bootstrap_relays", mode="after")
    @classmethod
    def validate_bootstrap_relays(cls, v: list[str]) -> list[str]:
        """Reject malformed, local and private relay URLs."""
        for url in v:
            if parse_relay_endpoint(url) is None:
                raise ValueError(f"Invalid or local bootstrap relay: {url}")
        return v
