from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import RoomDetailsResponse, RoomListResponse, RoomPlayers, RoomSummary
from constants import BLACK, WHITE
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/", response_model=RoomListResponse)
async def list_rooms(request: Request):
    """List live rooms with their occupancy. Read-only."""
    registry = request.app.state.registry
    summaries = []
    for room in registry.rooms():
        with room.lock:
            players_count = sum(1 for conn_id in room.seats.values() if conn_id is not None)
            summaries.append(RoomSummary(
                room_id=room.id,
                status=room.status,
                players_count=players_count,
                spectators_count=len(room.spectators),
            ))
    logger.debug(f"Room list request: {len(summaries)} rooms")
    return RoomListResponse(rooms=summaries, count=len(summaries))


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get details of a live room.

    Returns:
    - room_id: Room identifier
    - status: waiting | playing | finished
    - created_at: Room creation timestamp
    - players: connection ids seated as white (w) and black (b)
    - spectators_count / online_users_count: current occupancy
    - fen / turn: current position and side to move
    - terminal_reason: why the current game ended, if it has
    """
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room details request for {room_id} from {client_host}")

    registry = request.app.state.registry
    room = registry.get(room_id)
    if not room:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    with room.lock:
        snapshot = registry.engine.snapshot(room.game)
        return RoomDetailsResponse(
            room_id=room.id,
            status=room.status,
            created_at=room.created_at,
            players=RoomPlayers(w=room.seats[WHITE], b=room.seats[BLACK]),
            spectators_count=len(room.spectators),
            online_users_count=len(room.connection_ids()),
            fen=snapshot["fen"],
            turn=snapshot["turn"],
            is_full=room.is_full(),
            terminal_reason=room.terminal_reason,
        )
