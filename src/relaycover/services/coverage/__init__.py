"""Coverage driver package.

Re-exports all public symbols::

    from relaycover.services.coverage import FolloweeCoverage, CoverageConfig
"""

from .configs import (
    BOOTSTRAP_RELAYS,
    BatchConfig,
    CoverageConfig,
    HealthConfig,
    LimitsConfig,
    ProfilesConfig,
    SourceFlags,
    TimeoutsConfig,
)
from .service import AnalysisUpdate, FolloweeCoverage, LoadUpdate
from .utils import format_dump, union_relays


__all__ = [
    "BOOTSTRAP_RELAYS",
    "AnalysisUpdate",
    "BatchConfig",
    "CoverageConfig",
    "FolloweeCoverage",
    "HealthConfig",
    "LimitsConfig",
    "LoadUpdate",
    "ProfilesConfig",
    "SourceFlags",
    "TimeoutsConfig",
    "format_dump",
    "union_relays",
]
