r"""relaycover -- Relay coverage analysis for Nostr followees.

For every account a user follows, relaycover finds the relays that account
publishes to and counts how many of them the user actually reads from
("coverage"). Relay lists are gathered concurrently from many relays in
bounded batches, deduplicated by recency, and streamed back as a ranked,
continuously re-sorted snapshot.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Aggregation driver and configuration
             /        \
          core        utils    Sessions, scheduling, pool / parsers, codecs
             \        /
              models           Pure frozen dataclasses (zero I/O)
```

Note:
    Top-level imports (``from relaycover import FolloweeCoverage``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("relaycover")

__all__ = [
    "AnalysisUpdate",
    "CoverageConfig",
    "Event",
    "FolloweeAnalysis",
    "FolloweeCoverage",
    "LoadUpdate",
    "Logger",
    "NostrSdkRelayPool",
    "Profile",
    "RelayEndpoint",
    "RelayHealthTracker",
    "SourceFlags",
    "SubscriptionSession",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("relaycover.core", "Logger"),
    "NostrSdkRelayPool": ("relaycover.core", "NostrSdkRelayPool"),
    "RelayHealthTracker": ("relaycover.core", "RelayHealthTracker"),
    "SubscriptionSession": ("relaycover.core", "SubscriptionSession"),
    "Event": ("relaycover.models", "Event"),
    "FolloweeAnalysis": ("relaycover.models", "FolloweeAnalysis"),
    "Profile": ("relaycover.models", "Profile"),
    "RelayEndpoint": ("relaycover.models", "RelayEndpoint"),
    "AnalysisUpdate": ("relaycover.services", "AnalysisUpdate"),
    "CoverageConfig": ("relaycover.services", "CoverageConfig"),
    "FolloweeCoverage": ("relaycover.services", "FolloweeCoverage"),
    "LoadUpdate": ("relaycover.services", "LoadUpdate"),
    "SourceFlags": ("relaycover.services", "SourceFlags"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'relaycover' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
