"""Tests for the repository channel hub."""

import json

import pytest

from src.realtime.connection import ConnectionHandle
from src.realtime.hub import ChannelHub, get_channel_hub, set_channel_hub
from src.realtime.messages import ChannelMessage, OutboundMessageType

# ============================================================================
# Fixtures
# ============================================================================


class FakeConnection:
    """In-memory ConnectionHandle recording the frames it receives."""

    def __init__(self, identity: str, *, open: bool = True, fail: bool = False) -> None:
        self._identity = identity
        self.open = open
        self.fail = fail
        self.frames: list[dict] = []

    @property
    def identity(self) -> str:
        return self._identity

    def is_open(self) -> bool:
        return self.open

    async def send(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.frames.append(json.loads(data))


async def join(hub: ChannelHub, repository_id: str) -> tuple[FakeConnection, FakeConnection]:
    a, b = FakeConnection("a"), FakeConnection("b")
    await hub.connect(repository_id, a)
    await hub.connect(repository_id, b)
    return a, b


@pytest.fixture
def hub():
    """Create an empty hub."""
    return ChannelHub()


@pytest.fixture
def message():
    """Sample outbound message."""
    return ChannelMessage.outbound(OutboundMessageType.FILE_UPDATED, {"path": "README.md"})


# ============================================================================
# Membership Tests
# ============================================================================


class TestMembership:
    """Tests for joining and leaving channels."""

    def test_fake_connection_is_a_handle(self):
        """Test the fake satisfies the handle protocol."""
        assert isinstance(FakeConnection("a"), ConnectionHandle)

    @pytest.mark.asyncio
    async def test_connect_creates_channel(self, hub):
        """Test that the first connection creates the channel."""
        await hub.connect("r1", FakeConnection("a"))

        assert await hub.active_channels() == {"r1"}
        assert await hub.connection_count("r1") == 1

    @pytest.mark.asyncio
    async def test_connect_twice_is_idempotent(self, hub):
        """Test that re-adding a connection does not duplicate it."""
        a = FakeConnection("a")
        await hub.connect("r1", a)
        await hub.connect("r1", a)

        assert await hub.connection_count("r1") == 1

    @pytest.mark.asyncio
    async def test_connection_count_across_channels(self, hub):
        """Test counting all registered connections."""
        await hub.connect("r1", FakeConnection("a"))
        await hub.connect("r1", FakeConnection("b"))
        await hub.connect("r2", FakeConnection("c"))

        assert await hub.connection_count() == 3
        assert await hub.connection_count("r3") == 0

    @pytest.mark.asyncio
    async def test_last_disconnect_removes_channel(self, hub, message):
        """Test that A and B leaving empties the channel."""
        a, b = FakeConnection("a"), FakeConnection("b")
        await hub.connect("r1", a)
        await hub.connect("r1", b)

        await hub.disconnect("r1", a)
        assert await hub.active_channels() == {"r1"}

        await hub.disconnect("r1", b)
        assert await hub.active_channels() == set()
        assert await hub.broadcast("r1", None, message) == 0

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self, hub):
        """Test leaving a channel that does not exist."""
        await hub.disconnect("r1", FakeConnection("a"))

        assert await hub.active_channels() == set()


# ============================================================================
# Broadcast Tests
# ============================================================================


class TestBroadcast:
    """Tests for channel broadcasts."""

    @pytest.mark.asyncio
    async def test_broadcast_excluding_sender(self, hub, message):
        """Test that A's message excluding A reaches only B."""
        a, b = FakeConnection("a"), FakeConnection("b")
        await hub.connect("r1", a)
        await hub.connect("r1", b)

        sent = await hub.broadcast("r1", a, message)

        assert sent == 1
        assert a.frames == []
        assert b.frames == [{"type": "file_updated", "payload": {"path": "README.md"}}]

    @pytest.mark.asyncio
    async def test_broadcast_to_everyone(self, hub, message):
        """Test that without exclusion both members receive the message."""
        a, b = FakeConnection("a"), FakeConnection("b")
        await hub.connect("r1", a)
        await hub.connect("r1", b)

        sent = await hub.broadcast("r1", None, message)

        assert sent == 2
        assert len(a.frames) == 1
        assert len(b.frames) == 1

    @pytest.mark.asyncio
    async def test_broadcast_is_scoped_to_channel(self, hub, message):
        """Test that other repositories do not receive the message."""
        a, other = FakeConnection("a"), FakeConnection("other")
        await hub.connect("r1", a)
        await hub.connect("r2", other)

        await hub.broadcast("r1", None, message)

        assert other.frames == []

    @pytest.mark.asyncio
    async def test_broadcast_unknown_channel(self, hub, message):
        """Test broadcasting to a repository without clients."""
        assert await hub.broadcast("nobody", None, message) == 0

    @pytest.mark.asyncio
    async def test_closed_connections_are_skipped(self, hub, message):
        """Test that connections that are not open are not sent to."""
        a, closed = FakeConnection("a"), FakeConnection("closed", open=False)
        await hub.connect("r1", a)
        await hub.connect("r1", closed)

        sent = await hub.broadcast("r1", None, message)

        assert sent == 1
        assert closed.frames == []

    @pytest.mark.asyncio
    async def test_send_failure_does_not_stop_others(self, hub, message):
        """Test that one failing connection leaves the rest served."""
        good, broken = FakeConnection("good"), FakeConnection("broken", fail=True)
        await hub.connect("r1", good)
        await hub.connect("r1", broken)

        sent = await hub.broadcast("r1", None, message)

        assert sent == 1
        assert len(good.frames) == 1
        # Failed connections stay registered until they disconnect
        assert await hub.connection_count("r1") == 2


# ============================================================================
# Inbound Message Tests
# ============================================================================


class TestHandleMessage:
    """Tests for routing client frames."""

    @pytest.mark.asyncio
    async def test_file_change_not_echoed(self, hub):
        """Test that a file change goes to the other clients only."""
        a, b = await join(hub, "r1")

        sent = await hub.handle_message(
            "r1", a, json.dumps({"type": "file_change", "payload": {"path": "x.py"}})
        )

        assert sent == 1
        assert a.frames == []
        assert b.frames == [{"type": "file_updated", "payload": {"path": "x.py"}}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "inbound,outbound",
        [
            ("comment_added", "new_comment"),
            ("pr_status_change", "pr_updated"),
            ("issue_update", "issue_updated"),
        ],
    )
    async def test_other_types_reach_everyone(self, hub, inbound, outbound):
        """Test that non file-change messages include the sender."""
        a, b = await join(hub, "r1")

        sent = await hub.handle_message("r1", a, json.dumps({"type": inbound, "payload": 7}))

        assert sent == 2
        assert a.frames == [{"type": outbound, "payload": 7}]
        assert b.frames == [{"type": outbound, "payload": 7}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["{broken", '{"type": "deploy"}', '"file_change"'])
    async def test_bad_frames_are_ignored(self, hub, raw):
        """Test that malformed or unknown frames broadcast nothing."""
        a, b = await join(hub, "r1")

        sent = await hub.handle_message("r1", a, raw)

        assert sent == 0
        assert a.frames == []
        assert b.frames == []


# ============================================================================
# Server Notification Tests
# ============================================================================


class TestNotifyRepositoryUpdate:
    """Tests for server-originated pushes."""

    @pytest.mark.asyncio
    async def test_notify_reaches_all_clients(self, hub):
        """Test notifying every client of a repository."""
        a, b = FakeConnection("a"), FakeConnection("b")
        await hub.connect("r1", a)
        await hub.connect("r1", b)

        sent = await hub.notify_repository_update(
            "r1", OutboundMessageType.PR_UPDATED, {"number": 12, "state": "merged"}
        )

        assert sent == 2
        assert a.frames == [{"type": "pr_updated", "payload": {"number": 12, "state": "merged"}}]

    @pytest.mark.asyncio
    async def test_notify_without_clients(self, hub):
        """Test notifying a repository nobody is watching."""
        assert await hub.notify_repository_update("r1", "issue_updated", {}) == 0


class TestGlobalHub:
    """Tests for global hub singleton."""

    def test_get_channel_hub_singleton(self):
        """Test that global hub is a singleton."""
        set_channel_hub(None)

        hub1 = get_channel_hub()
        hub2 = get_channel_hub()

        assert isinstance(hub1, ChannelHub)
        assert hub1 is hub2

        set_channel_hub(None)
