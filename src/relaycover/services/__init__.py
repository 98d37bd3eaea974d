"""Driver layer orchestrating the core components for a user-facing analysis.

Attributes:
    FolloweeCoverage: Loads a user's followees and streams ranked relay
        coverage for each of them.
        See [FolloweeCoverage][relaycover.services.coverage.FolloweeCoverage].
"""

from .coverage import (
    AnalysisUpdate,
    CoverageConfig,
    FolloweeCoverage,
    LoadUpdate,
    SourceFlags,
    format_dump,
)


__all__ = [
    "AnalysisUpdate",
    "CoverageConfig",
    "FolloweeCoverage",
    "LoadUpdate",
    "SourceFlags",
    "format_dump",
]
