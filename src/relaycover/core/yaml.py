"""YAML configuration loading.

Uses ``yaml.safe_load`` so untrusted YAML cannot instantiate Python
objects. Consumed by
[FolloweeCoverage.from_yaml()][relaycover.services.coverage.service.FolloweeCoverage.from_yaml]
and the CLI runner; the returned dict is validated by
[CoverageConfig][relaycover.services.coverage.configs.CoverageConfig].
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Returns:
        Parsed mapping, or an empty dict for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file contains invalid YAML syntax.
        ValueError: If the top-level YAML value is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")
    return data
