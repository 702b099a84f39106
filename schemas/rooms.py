from pydantic import BaseModel
from typing import Optional


class RoomPlayers(BaseModel):
    w: Optional[str] = None
    b: Optional[str] = None

class RoomSummary(BaseModel):
    room_id: str
    status: str
    players_count: int
    spectators_count: int

class RoomListResponse(BaseModel):
    rooms: list[RoomSummary]
    count: int

class RoomDetailsResponse(BaseModel):
    room_id: str
    status: str
    created_at: str
    players: RoomPlayers
    spectators_count: int
    online_users_count: int
    fen: str
    turn: str
    is_full: bool
    terminal_reason: Optional[str] = None
