import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from constants import PLAYER_COLORS
from fanout import ConnectionId
from logging_config import get_logger

logger = get_logger(__name__)


class AlreadyBoundError(Exception):
    def __init__(self, connection_id: ConnectionId, room_id: str):
        self.connection_id = connection_id
        self.room_id = room_id
        super().__init__(f"Connection '{connection_id}' is already bound to room '{room_id}'")


@dataclass(frozen=True)
class SessionBinding:
    room_id: str
    seat: str
    display_name: Optional[str] = None
    connected_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def is_player(self) -> bool:
        return self.seat in PLAYER_COLORS


class SessionStore:
    """Connection id -> SessionBinding. A binding is written once and only
    removed when the connection goes away."""

    def __init__(self):
        self._bindings: Dict[ConnectionId, SessionBinding] = {}
        self._lock = threading.Lock()

    def get(self, connection_id: ConnectionId) -> Optional[SessionBinding]:
        with self._lock:
            return self._bindings.get(connection_id)

    def is_bound(self, connection_id: ConnectionId) -> bool:
        return self.get(connection_id) is not None

    def bind(self, connection_id: ConnectionId, binding: SessionBinding):
        with self._lock:
            existing = self._bindings.get(connection_id)
            if existing is not None:
                raise AlreadyBoundError(connection_id, existing.room_id)
            self._bindings[connection_id] = binding
        logger.debug(f"Bound connection {connection_id} to room {binding.room_id} as {binding.seat}")

    def unbind(self, connection_id: ConnectionId) -> Optional[SessionBinding]:
        with self._lock:
            return self._bindings.pop(connection_id, None)

    def __len__(self) -> int:
        return len(self._bindings)
