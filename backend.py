import secrets
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from constants import BLACK, PLAYER_COLORS, SPECTATOR, STATUS_FINISHED, STATUS_PLAYING, STATUS_WAITING, WHITE
from fanout import ConnectionId
from logging_config import get_logger
from rules import RulesEngine

logger = get_logger(__name__)


class Room:
    """One game instance with two player seats and a spectator set.

    Callers hold ``room.lock`` around any read-modify-broadcast sequence.
    """

    def __init__(self, room_id: str, game: Any):
        self.id = room_id
        self.game = game
        self.seats: Dict[str, Optional[ConnectionId]] = {WHITE: None, BLACK: None}
        self.spectators: Set[ConnectionId] = set()
        self.status = STATUS_WAITING
        self.created_at = datetime.now().isoformat()
        self.terminal_reason: Optional[str] = None
        self.reconnect_tokens: Dict[str, str] = {}
        # color -> (token, expires_at)
        self.reservations: Dict[str, Tuple[str, float]] = {}
        self.lock = threading.RLock()
        self.closed = False

    def is_empty(self) -> bool:
        return self.seats[WHITE] is None and self.seats[BLACK] is None and not self.spectators

    def is_full(self) -> bool:
        return self.seats[WHITE] is not None and self.seats[BLACK] is not None

    def connection_ids(self) -> List[ConnectionId]:
        ids = [conn_id for conn_id in self.seats.values() if conn_id is not None]
        ids.extend(self.spectators)
        return ids

    def _expire_reservations(self, now: float):
        for color, (_, expires_at) in list(self.reservations.items()):
            if expires_at <= now:
                del self.reservations[color]
                logger.debug(f"Reservation for seat {color} in room {self.id} expired")

    def assign_seat(self, connection_id: ConnectionId, token: Optional[str] = None, now: float = 0.0) -> Tuple[str, Optional[str]]:
        """Seat a connection and return ``(seat, reconnect_token)``.

        A matching token reclaims its reserved seat; otherwise seats fill
        white, then black, skipping seats still reserved for someone else.
        Everyone else becomes a spectator.
        """
        self._expire_reservations(now)

        if token:
            for color, (reserved_token, _) in list(self.reservations.items()):
                if self.seats[color] is None and secrets.compare_digest(reserved_token.encode(), token.encode()):
                    del self.reservations[color]
                    self._take_seat(color, connection_id)
                    return color, self.reconnect_tokens[color]

        for color in PLAYER_COLORS:
            if self.seats[color] is None and color not in self.reservations:
                self._take_seat(color, connection_id)
                return color, self.reconnect_tokens[color]

        self.spectators.add(connection_id)
        return SPECTATOR, None

    def _take_seat(self, color: str, connection_id: ConnectionId):
        # tokens rotate on every seating so an old one cannot be replayed
        self.seats[color] = connection_id
        self.reconnect_tokens[color] = secrets.token_urlsafe(16)

    def release(self, connection_id: ConnectionId, seat: str, now: float = 0.0, grace_seconds: float = 0.0) -> bool:
        """Drop a connection from the room; True when a player seat was freed.

        A seat is only freed when its recorded occupant is this exact
        connection, so a stale disconnect never evicts a later joiner.
        """
        if seat in PLAYER_COLORS and self.seats[seat] == connection_id:
            self.seats[seat] = None
            token = self.reconnect_tokens.pop(seat, None)
            if token and grace_seconds > 0:
                self.reservations[seat] = (token, now + grace_seconds)
            return True
        self.spectators.discard(connection_id)
        return False

    def recompute_status(self) -> str:
        if self.terminal_reason is not None:
            self.status = STATUS_FINISHED
        elif self.is_full():
            self.status = STATUS_PLAYING
        else:
            self.status = STATUS_WAITING
        return self.status

    def finish(self, reason: str):
        self.terminal_reason = reason
        self.status = STATUS_FINISHED

    def reset_game(self, game: Any):
        self.game = game
        self.terminal_reason = None
        self.recompute_status()

    def occupancy(self) -> Dict[str, Any]:
        return {
            "players": {WHITE: self.seats[WHITE], BLACK: self.seats[BLACK]},
            "spectators": sorted(self.spectators),
        }


class RoomRegistry:
    """Process-wide map of room id to ``Room``, owned by this object only."""

    def __init__(self, engine: RulesEngine):
        self.engine = engine
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        logger.info(f"Initializing RoomRegistry with engine {type(engine).__name__}")

    def get_or_create(self, room_id: str) -> Room:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = Room(room_id, self.engine.new_game())
                self._rooms[room_id] = room
                logger.info(f"Created room {room_id} (rooms: {len(self._rooms)})")
            return room

    def get(self, room_id: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(room_id)

    def remove(self, room_id: str):
        with self._lock:
            room = self._rooms.pop(room_id, None)
        if room is not None:
            room.closed = True
            logger.info(f"Removed room {room_id}")

    def discard_if_empty(self, room_id: str) -> bool:
        """Remove the room only if nobody is bound to it any more."""
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return False
            with room.lock:
                if not room.is_empty():
                    return False
                room.closed = True
                del self._rooms[room_id]
        logger.info(f"Room {room_id} is empty, destroyed (rooms: {len(self._rooms)})")
        return True

    def rooms(self) -> List[Room]:
        with self._lock:
            return list(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms
