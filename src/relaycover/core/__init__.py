"""Core layer: relay pool, subscription sessions, scheduling and ambient infrastructure.

Sits in the middle of the diamond DAG -- depends only on
``relaycover.models`` and is depended upon by ``relaycover.services``.

Attributes:
    NostrSdkRelayPool: Relay pool backed by nostr-sdk clients.
        See [NostrSdkRelayPool][relaycover.core.pool.NostrSdkRelayPool].
    SubscriptionSession: Time-bounded query of one identity batch.
        See [SubscriptionSession][relaycover.core.session.SubscriptionSession].
    BatchScheduler: Bounded-concurrency batch runner.
    EventDeduplicator: Newest-wins store per ``(pubkey, kind)``.
    RelayHealthTracker: Per-relay failure accounting and exclusion.
    ProfileCache: Persistent profile store with coalesced writes.
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
    YAML: Safe YAML loading via [load_yaml()][relaycover.core.yaml.load_yaml].

See Also:
    [relaycover.models][relaycover.models]: Pure dataclass models consumed by this layer.
    [relaycover.services][relaycover.services]: The aggregation driver built on this layer.
"""

from .cache import ProfileCache
from .coverage import (
    CoverageResult,
    analyze_coverage,
    build_analysis,
    calculate_ranks,
    rank_followees,
    read_relays_of,
    sort_by_coverage,
    write_relays_of,
)
from .dedup import EventDeduplicator
from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    ProtocolError,
    RelayCoverError,
)
from .health import RelayHealthTracker
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    SESSION_DURATION_SECONDS,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)
from .pool import NostrSdkRelayPool, PoolMessage, PoolMessageType, RelayPool
from .scheduler import Batch, BatchProgress, BatchScheduler
from .session import SessionResult, SubscriptionSession, fetch_latest
from .stream import UpdateStream
from .yaml import load_yaml


__all__ = [
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "SESSION_DURATION_SECONDS",
    "Batch",
    "BatchProgress",
    "BatchScheduler",
    "ConfigurationError",
    "ConnectivityError",
    "CoverageResult",
    "EventDeduplicator",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "NostrSdkRelayPool",
    "PoolMessage",
    "PoolMessageType",
    "ProfileCache",
    "ProtocolError",
    "RelayCoverError",
    "RelayHealthTracker",
    "RelayPool",
    "SessionResult",
    "StructuredFormatter",
    "SubscriptionSession",
    "UpdateStream",
    "analyze_coverage",
    "build_analysis",
    "calculate_ranks",
    "fetch_latest",
    "format_kv_pairs",
    "load_yaml",
    "rank_followees",
    "read_relays_of",
    "sort_by_coverage",
    "start_metrics_server",
    "write_relays_of",
]
