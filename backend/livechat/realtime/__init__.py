"""Realtime module - rooms, connection handles and presence."""

from .hub import Connection, RoomHub
from .presence import PresenceEntry, PresenceRegistry

__all__ = ["Connection", "RoomHub", "PresenceEntry", "PresenceRegistry"]
