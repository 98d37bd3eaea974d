"""
Unit tests for core.pool module.

Tests:
- PoolMessage factories
- build_filter() against real nostr-sdk types
- NostrSdkRelayPool query stream with mocked nostr-sdk clients:
  connection failures, fetch failures, malformed events, client reuse
- close() shutting down cached clients
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fixtures.events import make_event

from relaycover.core.pool import (
    DEFAULT_TIMEOUT,
    NostrSdkRelayPool,
    PoolMessage,
    PoolMessageType,
    build_filter,
)
from relaycover.models import EventKind


VALID_HEX = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"
R1 = "wss://relay.one.example"


def sdk_event(payload: dict) -> MagicMock:
    evt = MagicMock()
    evt.as_json.return_value = json.dumps(payload)
    return evt


def connected_client(events: list[MagicMock]) -> AsyncMock:
    client = AsyncMock()
    output = MagicMock()
    output.success = ["relay-url"]
    output.failed = {}
    client.try_connect = AsyncMock(return_value=output)
    result = MagicMock()
    result.to_vec.return_value = events
    client.fetch_events = AsyncMock(return_value=result)
    return client


async def collect(pool: NostrSdkRelayPool, relays: list[str]) -> list[PoolMessage]:
    return [
        m async for m in pool.query([EventKind.RELAY_LIST], [VALID_HEX], relays, limit=3)
    ]


@pytest.fixture
def sdk():
    """Patch the nostr-sdk entry points used by the pool."""
    with (
        patch("relaycover.core.pool.ClientBuilder") as builder,
        patch("relaycover.core.pool.RelayUrl") as relay_url,
        patch("relaycover.core.pool.build_filter") as make_filter,
    ):
        relay_url.parse.return_value = "relay-url"
        make_filter.return_value = MagicMock()
        yield builder


# ============================================================================
# Message and Filter Tests
# ============================================================================


class TestPoolMessage:
    def test_factories(self) -> None:
        """Each factory sets the type and attribution."""
        event = make_event(VALID_HEX, EventKind.RELAY_LIST)
        assert PoolMessage.connecting(R1).type is PoolMessageType.CONNECTING
        assert PoolMessage.received(R1, event).event is event
        assert PoolMessage.eose(R1) == PoolMessage(PoolMessageType.EOSE, R1)
        failed = PoolMessage.failed(R1, "refused")
        assert failed.type is PoolMessageType.ERROR
        assert failed.error == "refused"
        assert failed.relay == R1


class TestBuildFilter:
    def test_builds_nostr_filter(self) -> None:
        """The filter serializes the requested kinds, authors and limit."""
        data = json.loads(build_filter([0, 10_002], [VALID_HEX], limit=3).as_json())
        assert data["kinds"] == [0, 10_002]
        assert data["authors"] == [VALID_HEX]
        assert data["limit"] == 3

    def test_without_limit(self) -> None:
        """No limit key is emitted when none is requested."""
        data = json.loads(build_filter([3], [VALID_HEX]).as_json())
        assert "limit" not in data


# ============================================================================
# NostrSdkRelayPool Tests
# ============================================================================


class TestQuery:
    @pytest.mark.asyncio
    async def test_events_then_eose(self, sdk: MagicMock) -> None:
        """A healthy relay reports connecting, its events, then EOSE."""
        payload = make_event(VALID_HEX, EventKind.RELAY_LIST).to_dict()
        sdk.return_value.build.return_value = connected_client([sdk_event(payload)])

        async with NostrSdkRelayPool(timeout=1.0) as pool:
            messages = await collect(pool, [R1])

        assert [m.type for m in messages] == [
            PoolMessageType.CONNECTING,
            PoolMessageType.EVENT,
            PoolMessageType.EOSE,
        ]
        assert messages[1].event.pubkey == VALID_HEX
        assert all(m.relay == R1 for m in messages)

    @pytest.mark.asyncio
    async def test_connection_failure(self, sdk: MagicMock) -> None:
        """A refused connection yields ERROR and the client is not cached."""
        client = connected_client([])
        client.try_connect.return_value.success = []
        client.try_connect.return_value.failed = {"relay-url": "refused"}
        sdk.return_value.build.return_value = client

        pool = NostrSdkRelayPool()
        messages = await collect(pool, [R1])

        assert messages[-1].type is PoolMessageType.ERROR
        assert "refused" in messages[-1].error
        assert pool._clients == {}
        client.shutdown.assert_awaited()

    @pytest.mark.asyncio
    async def test_fetch_failure_discards_client(self, sdk: MagicMock) -> None:
        """A failing fetch yields ERROR and forgets the client."""
        client = connected_client([])
        client.fetch_events.side_effect = RuntimeError("stream closed")
        sdk.return_value.build.return_value = client

        pool = NostrSdkRelayPool()
        messages = await collect(pool, [R1])

        assert messages[-1] == PoolMessage.failed(R1, "stream closed")
        assert R1 not in pool._clients

    @pytest.mark.asyncio
    async def test_malformed_event_skipped(self, sdk: MagicMock) -> None:
        """Events that do not parse are skipped; the relay still reaches EOSE."""
        good = make_event(VALID_HEX, EventKind.RELAY_LIST).to_dict()
        bad = {**good, "pubkey": "not-hex"}
        sdk.return_value.build.return_value = connected_client([sdk_event(bad), sdk_event(good)])

        messages = await collect(NostrSdkRelayPool(), [R1])

        events = [m for m in messages if m.type is PoolMessageType.EVENT]
        assert len(events) == 1
        assert messages[-1].type is PoolMessageType.EOSE

    @pytest.mark.asyncio
    async def test_client_reused(self, sdk: MagicMock) -> None:
        """A connected client serves later queries without reconnecting."""
        sdk.return_value.build.return_value = connected_client([])

        pool = NostrSdkRelayPool()
        await collect(pool, [R1])
        await collect(pool, [R1])

        assert sdk.return_value.build.call_count == 1

    @pytest.mark.asyncio
    async def test_empty_relays(self, sdk: MagicMock) -> None:
        """No relays means an empty stream and no connections."""
        assert await collect(NostrSdkRelayPool(), []) == []
        sdk.return_value.build.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_shuts_down_clients(self, sdk: MagicMock) -> None:
        """close() shuts down every cached client."""
        client = connected_client([])
        sdk.return_value.build.return_value = client

        async with NostrSdkRelayPool() as pool:
            await collect(pool, [R1])
            assert R1 in pool._clients

        client.shutdown.assert_awaited()
        assert pool._clients == {}

    def test_default_timeout(self) -> None:
        """The default per-fetch timeout is seven seconds."""
        assert DEFAULT_TIMEOUT == 7.0
        assert NostrSdkRelayPool()._timeout == 7.0
