"""
Unit tests for services.coverage.configs module.

Tests:
- CoverageConfig defaults (bootstrap relays, timeouts, batching)
- Bootstrap relay validation
- Field bounds of the nested models
- SourceFlags.kinds
"""

import pytest
from pydantic import ValidationError

from relaycover.models import EventKind
from relaycover.services.coverage import (
    BOOTSTRAP_RELAYS,
    BatchConfig,
    CoverageConfig,
    LimitsConfig,
    ProfilesConfig,
    SourceFlags,
    TimeoutsConfig,
)


class TestDefaults:
    def test_coverage_config(self) -> None:
        """Built-in defaults match the documented values."""
        config = CoverageConfig()

        assert config.bootstrap_relays == list(BOOTSTRAP_RELAYS)
        assert config.timeouts.fetch == 7.0
        assert config.limits.events_per_fetch == 3
        assert config.batch.size == 50
        assert config.batch.max_concurrent == 4
        assert config.health.failure_threshold == 3
        assert config.profiles.fetch_missing is True
        assert config.profiles.cache_path is None
        assert config.profiles.flush_interval == 0.5
        assert config.sources.use_directory_format is True
        assert config.sources.use_legacy_format is False
        assert config.metrics.enabled is False

    def test_bootstrap_relays_well_known(self) -> None:
        """The default bootstrap set contains the common public relays."""
        assert "wss://relay.damus.io" in BOOTSTRAP_RELAYS
        assert "wss://nos.lol" in BOOTSTRAP_RELAYS
        assert len(BOOTSTRAP_RELAYS) == len(set(BOOTSTRAP_RELAYS))

    def test_nested_from_dict(self) -> None:
        """Nested sections are parsed from plain dicts."""
        config = CoverageConfig(
            bootstrap_relays=["wss://boot.example"],
            timeouts={"fetch": 2.5},
            batch={"size": 10},
            sources={"use_legacy_format": True},
        )
        assert config.bootstrap_relays == ["wss://boot.example"]
        assert config.timeouts.fetch == 2.5
        assert config.batch.size == 10
        assert config.batch.max_concurrent == 4
        assert config.sources.use_legacy_format is True


class TestBootstrapValidation:
    @pytest.mark.parametrize(
        "url", ["ws://127.0.0.1:7777", "wss://localhost", "https://relay.example", "nope"]
    )
    def test_invalid_rejected(self, url: str) -> None:
        """Local, non-websocket and malformed relays are rejected."""
        with pytest.raises(ValidationError, match="Invalid or local bootstrap relay"):
            CoverageConfig(bootstrap_relays=["wss://ok.example", url])

    def test_empty_rejected(self) -> None:
        """At least one bootstrap relay is required."""
        with pytest.raises(ValidationError):
            CoverageConfig(bootstrap_relays=[])


class TestBounds:
    @pytest.mark.parametrize("fetch", [0, -1, 121])
    def test_timeout(self, fetch: float) -> None:
        with pytest.raises(ValidationError):
            TimeoutsConfig(fetch=fetch)

    @pytest.mark.parametrize(("size", "concurrent"), [(0, 4), (50, 0), (1001, 4), (50, 65)])
    def test_batch(self, size: int, concurrent: int) -> None:
        with pytest.raises(ValidationError):
            BatchConfig(size=size, max_concurrent=concurrent)

    def test_limits(self) -> None:
        with pytest.raises(ValidationError):
            LimitsConfig(events_per_fetch=0)

    def test_flush_interval(self) -> None:
        with pytest.raises(ValidationError):
            ProfilesConfig(flush_interval=0)


class TestSourceFlags:
    @pytest.mark.parametrize(
        ("directory", "legacy", "kinds"),
        [
            (True, False, [EventKind.RELAY_LIST]),
            (True, True, [EventKind.RELAY_LIST, EventKind.CONTACTS]),
            (False, True, [EventKind.CONTACTS]),
            (False, False, []),
        ],
    )
    def test_kinds(self, directory: bool, legacy: bool, kinds: list[int]) -> None:
        flags = SourceFlags(use_directory_format=directory, use_legacy_format=legacy)
        assert flags.kinds == kinds
