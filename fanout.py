"""Room-scoped multicast over whatever transport the connections use."""

import threading
from typing import Any, Dict, NewType, Protocol, Set

from logging_config import get_logger

logger = get_logger(__name__)

ConnectionId = NewType("ConnectionId", str)


class Connection(Protocol):
    id: ConnectionId

    def send(self, event: str, payload: Any) -> None:
        """Queue one outbound event. Must not block or raise on a dead peer."""
        ...


class BroadcastFanout:
    def __init__(self):
        self._connections: Dict[ConnectionId, Connection] = {}
        # room_id -> connection ids in that room's broadcast group
        self._groups: Dict[str, Set[ConnectionId]] = {}
        self._lock = threading.Lock()

    def register(self, connection: Connection):
        with self._lock:
            self._connections[connection.id] = connection
        logger.debug(f"Registered connection {connection.id} (connections: {len(self._connections)})")

    def unregister(self, connection_id: ConnectionId):
        with self._lock:
            self._connections.pop(connection_id, None)
            for room_id in [r for r, members in self._groups.items() if connection_id in members]:
                self._discard(room_id, connection_id)
        logger.debug(f"Unregistered connection {connection_id}")

    def add_to_group(self, room_id: str, connection_id: ConnectionId):
        with self._lock:
            self._groups.setdefault(room_id, set()).add(connection_id)
        logger.debug(f"Added connection {connection_id} to group {room_id}")

    def _discard(self, room_id: str, connection_id: ConnectionId):
        members = self._groups.get(room_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._groups[room_id]

    def unicast(self, connection_id: ConnectionId, event: str, payload: Any):
        with self._lock:
            connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug(f"Dropping {event} for unknown connection {connection_id}")
            return
        self._deliver(connection, event, payload)

    def broadcast(self, room_id: str, event: str, payload: Any):
        with self._lock:
            targets = [self._connections[c] for c in self._groups.get(room_id, ()) if c in self._connections]
        logger.debug(f"Broadcasting {event} to {len(targets)} connections in room {room_id}")
        for connection in targets:
            self._deliver(connection, event, payload)

    def _deliver(self, connection: Connection, event: str, payload: Any):
        # at-most-once: a failed send is logged and dropped
        try:
            connection.send(event, payload)
        except Exception as e:
            logger.warning(f"Error sending {event} to connection {connection.id}: {e}")
