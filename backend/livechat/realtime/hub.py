"""Connection handles and logical broadcast rooms.

A room is a set of connection ids: one per conversation (the customer plus
any agent who took it over) and the shared ``agents`` room. Frames are sent
as ``{"event": ..., "data": ...}``.
"""

import logging
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything that can push a JSON frame (a starlette WebSocket does)."""

    async def send_json(self, data: Any) -> None: ...


class RoomHub:
    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = {}
        self._memberships: dict[str, set[str]] = {}

    # ── Membership ──────────────────────────────────────────────────

    def add(self, connection_id: str, connection: Connection) -> None:
        self._connections[connection_id] = connection
        self._memberships.setdefault(connection_id, set())

    def remove(self, connection_id: str) -> None:
        """Forget a connection and take it out of every room."""
        self._connections.pop(connection_id, None)
        for room in self._memberships.pop(connection_id, set()):
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._rooms[room]

    def join(self, connection_id: str, room: str) -> None:
        """Add a connection to ``room``; ignored once the connection is gone."""
        if connection_id not in self._connections:
            logger.debug("Not joining %s to %s: connection already dropped", connection_id, room)
            return
        self._rooms.setdefault(room, set()).add(connection_id)
        self._memberships[connection_id].add(room)

    def leave(self, connection_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._rooms[room]
        self._memberships.get(connection_id, set()).discard(room)

    def members(self, room: str) -> set[str]:
        return set(self._rooms.get(room, set()))

    def rooms_of(self, connection_id: str) -> set[str]:
        return set(self._memberships.get(connection_id, set()))

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    # ── Delivery ────────────────────────────────────────────────────

    async def send(self, connection_id: str, event: str, data: dict[str, Any]) -> bool:
        """Deliver one frame to one connection.

        A connection whose send fails is dropped from the hub. Returns
        whether the frame was handed to the socket.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.send_json({"event": event, "data": data})
        except Exception as exc:
            logger.warning(
                "Dropping connection %s after failed %s send: %s",
                connection_id, event, exc,
            )
            self.remove(connection_id)
            return False
        return True

    async def emit(
        self,
        room: str,
        event: str,
        data: dict[str, Any],
        exclude: Optional[str] = None,
    ) -> int:
        """Deliver a frame to every member of ``room``; returns the count."""
        delivered = 0
        for connection_id in sorted(self.members(room)):
            if connection_id == exclude:
                continue
            if await self.send(connection_id, event, data):
                delivered += 1
        return delivered
