"""Who is on the other end of each live connection.

Purely in-memory and owned by one app instance. Nothing here survives a
disconnect: a reconnecting client registers again and re-reads its
conversation from the store.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional

logger = logging.getLogger(__name__)

Role = Literal["customer", "agent"]


@dataclass(frozen=True)
class PresenceEntry:
    role: Role
    conversation_id: Optional[str] = None
    customer_id: Optional[str] = None
    agent_id: Optional[str] = None


class PresenceRegistry:
    def __init__(self) -> None:
        self._by_connection: dict[str, PresenceEntry] = {}
        self._agent_connections: dict[str, str] = {}

    def register_customer(
        self, connection_id: str, conversation_id: str, customer_id: str
    ) -> PresenceEntry:
        self.remove(connection_id)
        entry = PresenceEntry(
            role="customer",
            conversation_id=conversation_id,
            customer_id=customer_id,
        )
        self._by_connection[connection_id] = entry
        return entry

    def register_agent(self, connection_id: str, agent_id: str) -> PresenceEntry:
        """Register an agent; a newer connection becomes its delivery target."""
        previous = self._agent_connections.get(agent_id)
        if previous is not None and previous != connection_id:
            logger.info("Agent %s moved from %s to %s", agent_id, previous, connection_id)
        self.remove(connection_id)
        entry = PresenceEntry(role="agent", agent_id=agent_id)
        self._by_connection[connection_id] = entry
        self._agent_connections[agent_id] = connection_id
        return entry

    def get(self, connection_id: str) -> Optional[PresenceEntry]:
        return self._by_connection.get(connection_id)

    def connection_for_agent(self, agent_id: str) -> Optional[str]:
        return self._agent_connections.get(agent_id)

    def remove(self, connection_id: str) -> Optional[PresenceEntry]:
        """Drop everything owned by ``connection_id``.

        The agent mapping is left alone when it already points at a newer
        connection of the same agent.
        """
        entry = self._by_connection.pop(connection_id, None)
        if entry is not None and entry.agent_id is not None:
            if self._agent_connections.get(entry.agent_id) == connection_id:
                del self._agent_connections[entry.agent_id]
        return entry

    def __len__(self) -> int:
        return len(self._by_connection)
