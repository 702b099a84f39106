import re
import time
from typing import Callable, Optional

from backend import Room, RoomRegistry
from constants import (
    BLACK,
    DEFAULT_PROMOTION,
    RECONNECT_GRACE_SECONDS,
    ROOM_ID_MAX_LENGTH,
    ROOM_ID_MIN_LENGTH,
    ROOM_ID_PATTERN,
    SPECTATOR,
    STATUS_FINISHED,
    WHITE,
)
from event_names import (
    EVENT_ERROR_MESSAGE,
    EVENT_GAME_OVER,
    EVENT_INIT,
    EVENT_INVALID_MOVE,
    EVENT_ROOM_STATE,
    EVENT_STATE,
    EVENT_STATUS_MESSAGE,
)
from fanout import BroadcastFanout, Connection, ConnectionId
from logging_config import get_logger
from rules import IllegalMoveError, MoveResult
from schemas.events import (
    GameOverPayload,
    InitPayload,
    JoinEvent,
    MoveEvent,
    MovePayload,
    ResignEvent,
    RestartEvent,
    RoomStatePayload,
    StatePayload,
)
from sessions import AlreadyBoundError, SessionBinding, SessionStore

logger = get_logger(__name__)

_ROOM_ID_RE = re.compile(ROOM_ID_PATTERN)

SEAT_LABELS = {WHITE: "White player", BLACK: "Black player", SPECTATOR: "Spectator"}

MSG_INVALID_ROOM_ID = "invalid room id"
MSG_ALREADY_JOINED = "already joined"
MSG_NOT_YOUR_TURN = "not your turn"
MSG_SPECTATOR_MOVE = "spectator cannot move"
MSG_GAME_OVER = "game is over"
MSG_BAD_COORDINATES = "bad coordinates"
MSG_ILLEGAL_MOVE = "illegal move"
MSG_PROCESSING_ERROR = "processing error"


def is_valid_room_id(room_id: Optional[str]) -> bool:
    if not isinstance(room_id, str):
        return False
    if not ROOM_ID_MIN_LENGTH <= len(room_id) <= ROOM_ID_MAX_LENGTH:
        return False
    # fullmatch: "$" alone would accept a trailing newline
    return _ROOM_ID_RE.fullmatch(room_id) is not None


class EventRouter:
    """Validates inbound events against the session and room, drives the
    rules engine and fans the results out to the room.

    Every handler is synchronous and holds the room lock for the whole
    read-modify-broadcast sequence.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        sessions: SessionStore,
        fanout: BroadcastFanout,
        reconnect_grace_seconds: float = RECONNECT_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.engine = registry.engine
        self.sessions = sessions
        self.fanout = fanout
        self.reconnect_grace_seconds = reconnect_grace_seconds
        self.clock = clock

    def connect(self, connection: Connection):
        self.fanout.register(connection)
        logger.debug(f"Connection {connection.id} attached")

    def dispatch(self, connection_id: ConnectionId, event):
        if isinstance(event, JoinEvent):
            self.join(connection_id, event.data.room_id, event.data.name, event.data.token)
        elif isinstance(event, MoveEvent):
            self.move(connection_id, event.data.from_square, event.data.to_square, event.data.promotion)
        elif isinstance(event, ResignEvent):
            self.resign(connection_id)
        elif isinstance(event, RestartEvent):
            self.restart(connection_id)
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def _snapshot(self, room: Room) -> dict:
        return {**self.engine.snapshot(room.game), "status": room.status}

    def _broadcast_room_state(self, room: Room):
        payload = RoomStatePayload.model_validate(room.occupancy())
        self.fanout.broadcast(room.id, EVENT_ROOM_STATE, payload.to_payload())

    def _invalid_move(self, connection_id: ConnectionId, reason: str):
        self.fanout.unicast(connection_id, EVENT_INVALID_MOVE, reason)

    def join(self, connection_id: ConnectionId, room_id: Optional[str], name: Optional[str] = None, token: Optional[str] = None):
        if not is_valid_room_id(room_id):
            logger.warning(f"Join rejected for connection {connection_id}: invalid room id {room_id!r}")
            self.fanout.unicast(connection_id, EVENT_ERROR_MESSAGE, MSG_INVALID_ROOM_ID)
            return

        if self.sessions.is_bound(connection_id):
            logger.warning(f"Join rejected for connection {connection_id}: already bound")
            self.fanout.unicast(connection_id, EVENT_ERROR_MESSAGE, MSG_ALREADY_JOINED)
            return

        display_name = name.strip() if name and name.strip() else None

        while True:
            room = self.registry.get_or_create(room_id)
            with room.lock:
                # lost a race with the last connection leaving; resolve again
                if room.closed:
                    continue

                seat, reconnect_token = room.assign_seat(connection_id, token, self.clock())
                try:
                    self.sessions.bind(connection_id, SessionBinding(room_id, seat, display_name))
                except AlreadyBoundError:
                    room.release(connection_id, seat)
                    self.fanout.unicast(connection_id, EVENT_ERROR_MESSAGE, MSG_ALREADY_JOINED)
                    return

                self.fanout.add_to_group(room_id, connection_id)
                room.recompute_status()
                logger.info(f"Connection {connection_id} ({display_name}) joined room {room_id} as {seat}, status {room.status}")

                init = InitPayload.model_validate({
                    **self._snapshot(room),
                    "roomId": room_id,
                    "color": seat,
                    "reconnectToken": reconnect_token,
                })
                self.fanout.unicast(connection_id, EVENT_INIT, init.to_payload())
                self._broadcast_room_state(room)

                notice = f"{SEAT_LABELS[seat]} joined"
                if display_name:
                    notice = f"{notice}: {display_name}"
                self.fanout.broadcast(room_id, EVENT_STATUS_MESSAGE, notice)
                return

    def _apply_move(self, room: Room, from_square: str, to_square: str, promotion: Optional[str]) -> MoveResult:
        try:
            return self.engine.apply_move(room.game, from_square, to_square, promotion)
        except IllegalMoveError:
            if promotion is not None:
                raise
        # clients often omit the promotion piece; retry once as a queen
        return self.engine.apply_move(room.game, from_square, to_square, DEFAULT_PROMOTION)

    def move(self, connection_id: ConnectionId, from_square: Optional[str], to_square: Optional[str], promotion: Optional[str] = None):
        promotion = promotion or None
        binding = self.sessions.get(connection_id)
        if binding is None:
            logger.debug(f"Ignoring move from unbound connection {connection_id}")
            return
        room = self.registry.get(binding.room_id)
        if room is None:
            return

        with room.lock:
            if not binding.is_player:
                self._invalid_move(connection_id, MSG_SPECTATOR_MOVE)
                return

            try:
                if binding.seat != self.engine.turn(room.game):
                    self._invalid_move(connection_id, MSG_NOT_YOUR_TURN)
                    return
                if room.status == STATUS_FINISHED:
                    self._invalid_move(connection_id, MSG_GAME_OVER)
                    return
                if not from_square or not to_square:
                    self._invalid_move(connection_id, MSG_BAD_COORDINATES)
                    return
                result = self._apply_move(room, from_square, to_square, promotion)
            except IllegalMoveError as e:
                logger.debug(f"Rejected move in room {room.id} from {connection_id}: {e}")
                self._invalid_move(connection_id, MSG_ILLEGAL_MOVE)
                return
            except Exception as e:
                logger.error(f"Error processing move {from_square}->{to_square} in room {room.id}: {e}", exc_info=True)
                self._invalid_move(connection_id, MSG_PROCESSING_ERROR)
                return

            room.game = result.state
            over, reason = self.engine.is_game_over(room.game)
            if over:
                room.finish(reason)
                logger.info(f"Game in room {room.id} finished: {reason}")
            else:
                room.recompute_status()

            state = StatePayload.model_validate({
                **self._snapshot(room),
                "move": MovePayload(from_square=from_square, to_square=to_square, san=result.san, color=result.color),
            })
            logger.debug(f"Room {room.id}: {result.color} played {result.san}")
            self.fanout.broadcast(room.id, EVENT_STATE, state.to_payload(exclude_none=True))

    def resign(self, connection_id: ConnectionId):
        binding = self.sessions.get(connection_id)
        if binding is None or not binding.is_player:
            return
        room = self.registry.get(binding.room_id)
        if room is None:
            return

        with room.lock:
            if room.status == STATUS_FINISHED:
                logger.debug(f"Ignoring resign in finished room {room.id}")
                return
            room.finish("resign")
            winner = BLACK if binding.seat == WHITE else WHITE
            logger.info(f"{binding.seat} resigned in room {room.id}, winner {winner}")
            payload = GameOverPayload(reason="resign", winner=winner, fen=self.engine.snapshot(room.game)["fen"])
            self.fanout.broadcast(room.id, EVENT_GAME_OVER, payload.to_payload())

    def restart(self, connection_id: ConnectionId):
        binding = self.sessions.get(connection_id)
        if binding is None:
            return
        room = self.registry.get(binding.room_id)
        if room is None:
            return

        with room.lock:
            room.reset_game(self.engine.new_game())
            logger.info(f"Room {room.id} restarted by {connection_id}, status {room.status}")
            state = StatePayload.model_validate(self._snapshot(room))
            self.fanout.broadcast(room.id, EVENT_STATE, state.to_payload(exclude_none=True))

    def disconnect(self, connection_id: ConnectionId):
        try:
            binding = self.sessions.unbind(connection_id)
            self.fanout.unregister(connection_id)
            if binding is None:
                return
            room = self.registry.get(binding.room_id)
            if room is None:
                return

            with room.lock:
                room.release(connection_id, binding.seat, self.clock(), self.reconnect_grace_seconds)
                empty = room.is_empty()
                if not empty:
                    room.recompute_status()
                    self._broadcast_room_state(room)
                    notice = "A player disconnected" if binding.is_player else "A spectator disconnected"
                    self.fanout.broadcast(room.id, EVENT_STATUS_MESSAGE, notice)
            logger.info(f"Connection {connection_id} left room {room.id} (seat {binding.seat}), status {room.status}")

            # outside the room lock: the registry takes its own lock first
            if empty:
                self.registry.discard_if_empty(room.id)
        except Exception as e:
            logger.error(f"Error during disconnect cleanup for connection {connection_id}: {e}", exc_info=True)
