"""Tests for RoomHub membership and delivery."""

import pytest

from livechat.realtime.hub import RoomHub


class RecordingSocket:
    def __init__(self, fail: bool = False):
        self.frames = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise ConnectionResetError("gone")
        self.frames.append(data)


def _hub(*ids, failing=()):
    hub = RoomHub()
    sockets = {}
    for connection_id in ids:
        sockets[connection_id] = RecordingSocket(fail=connection_id in failing)
        hub.add(connection_id, sockets[connection_id])
    return hub, sockets


# ── Membership ───────────────────────────────────────────────────────


class TestMembership:
    def test_join_and_leave(self):
        hub, _ = _hub("a", "b")
        hub.join("a", "room")
        hub.join("b", "room")
        assert hub.members("room") == {"a", "b"}
        assert hub.rooms_of("a") == {"room"}

        hub.leave("a", "room")
        assert hub.members("room") == {"b"}
        assert hub.rooms_of("a") == set()

    def test_join_unknown_connection_is_ignored(self):
        hub = RoomHub()
        hub.join("ghost", "room")
        assert hub.members("room") == set()
        assert hub.rooms_of("ghost") == set()

    @pytest.mark.asyncio
    async def test_dropped_connection_can_still_join(self):
        hub, _ = _hub("a", failing=("a",))
        assert await hub.send("a", "ping", {}) is False
        hub.join("a", "room")
        assert hub.members("room") == set()

    def test_remove_clears_every_room(self):
        hub, _ = _hub("a")
        hub.join("a", "room-1")
        hub.join("a", "agents")
        hub.remove("a")
        assert hub.members("room-1") == set()
        assert hub.members("agents") == set()
        assert not hub.is_connected("a")

    def test_remove_unknown_is_noop(self):
        RoomHub().remove("ghost")


# ── Delivery ─────────────────────────────────────────────────────────


class TestDelivery:
    @pytest.mark.asyncio
    async def test_send_wraps_envelope(self):
        hub, sockets = _hub("a")
        assert await hub.send("a", "ping", {"x": 1}) is True
        assert sockets["a"].frames == [{"event": "ping", "data": {"x": 1}}]

    @pytest.mark.asyncio
    async def test_send_to_unknown(self):
        assert await RoomHub().send("ghost", "ping", {}) is False

    @pytest.mark.asyncio
    async def test_emit_to_room_with_exclude(self):
        hub, sockets = _hub("a", "b", "c")
        for connection_id in ("a", "b"):
            hub.join(connection_id, "room")

        delivered = await hub.emit("room", "hello", {}, exclude="a")

        assert delivered == 1
        assert sockets["a"].frames == []
        assert len(sockets["b"].frames) == 1
        assert sockets["c"].frames == []

    @pytest.mark.asyncio
    async def test_emit_to_empty_room(self):
        hub, _ = _hub("a")
        assert await hub.emit("nobody-here", "hello", {}) == 0

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        hub, sockets = _hub("a", "b", failing=("a",))
        hub.join("a", "room")
        hub.join("b", "room")

        delivered = await hub.emit("room", "hello", {})

        assert delivered == 1
        assert not hub.is_connected("a")
        assert hub.members("room") == {"b"}
        assert len(sockets["b"].frames) == 1
