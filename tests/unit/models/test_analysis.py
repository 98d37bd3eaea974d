"""
Unit tests for models.analysis module.

Tests:
- RelayDescriptor direction markers
- FolloweeAnalysis defaults, unanalyzed seeds and profile replacement
- RelayStatusEntry defaults
"""

import pytest

from relaycover.models import (
    UNANALYZED_COVERAGE,
    FolloweeAnalysis,
    Profile,
    RelayDescriptor,
    RelayState,
    RelayStatusEntry,
)


PUBKEY = "ab" * 32


class TestRelayDescriptor:
    @pytest.mark.parametrize(
        ("marker", "can_read", "can_write"),
        [(None, True, True), ("read", True, False), ("write", False, True), ("bogus", True, True)],
    )
    def test_from_marker(self, marker, can_read: bool, can_write: bool) -> None:
        descriptor = RelayDescriptor.from_marker("wss://nos.lol", marker)
        assert descriptor.url == "wss://nos.lol"
        assert descriptor.can_read is can_read
        assert descriptor.can_write is can_write


class TestFolloweeAnalysis:
    def test_unanalyzed_seed(self) -> None:
        analysis = FolloweeAnalysis.unanalyzed(Profile(PUBKEY))
        assert analysis.coverage == UNANALYZED_COVERAGE == -1
        assert not analysis.is_analyzed
        assert analysis.write_relays == ()
        assert analysis.pubkey == PUBKEY

    def test_with_profile_keeps_relays(self) -> None:
        analysis = FolloweeAnalysis(
            profile=Profile(PUBKEY),
            write_relays=("wss://a.example",),
            readable_relays=("wss://a.example",),
            coverage=1,
        )
        updated = analysis.with_profile(Profile(PUBKEY, name="alice"))

        assert updated.profile.name == "alice"
        assert updated.readable_relays == analysis.readable_relays
        assert updated.coverage == 1
        assert analysis.profile.name is None

    def test_zero_coverage_is_analyzed(self) -> None:
        assert FolloweeAnalysis(profile=Profile(PUBKEY), coverage=0).is_analyzed


class TestRelayStatusEntry:
    def test_default_wait(self) -> None:
        assert RelayStatusEntry("wss://nos.lol").state is RelayState.WAIT
