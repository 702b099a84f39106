from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


def _string_or_none(value: Any) -> Optional[str]:
    # wrong-typed fields become "missing" so the router can answer with the right error
    return value if isinstance(value, str) else None


def _dict_or_empty(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


class InboundModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JoinData(InboundModel):
    room_id: Optional[str] = Field(None, alias="roomId")
    name: Optional[str] = None
    token: Optional[str] = None

    @field_validator("room_id", "name", "token", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> Optional[str]:
        return _string_or_none(v)


class MoveData(InboundModel):
    from_square: Optional[str] = Field(None, alias="from")
    to_square: Optional[str] = Field(None, alias="to")
    promotion: Optional[str] = None

    @field_validator("from_square", "to_square", "promotion", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> Optional[str]:
        return _string_or_none(v)


class InboundEnvelope(InboundModel):
    @field_validator("data", mode="before", check_fields=False)
    @classmethod
    def coerce_data(cls, v: Any) -> dict:
        return _dict_or_empty(v)


class JoinEvent(InboundEnvelope):
    event: Literal["join"]
    data: JoinData = Field(default_factory=JoinData)


class MoveEvent(InboundEnvelope):
    event: Literal["move"]
    data: MoveData = Field(default_factory=MoveData)


class ResignEvent(InboundEnvelope):
    event: Literal["resign"]
    data: Dict[str, Any] = Field(default_factory=dict)


class RestartEvent(InboundEnvelope):
    event: Literal["restart"]
    data: Dict[str, Any] = Field(default_factory=dict)


InboundEvent = Annotated[
    Union[JoinEvent, MoveEvent, ResignEvent, RestartEvent],
    Field(discriminator="event"),
]

inbound_event_adapter = TypeAdapter(InboundEvent)


def parse_inbound(raw: str) -> Union[JoinEvent, MoveEvent, ResignEvent, RestartEvent]:
    """Parse one WebSocket text frame. Raises ``pydantic.ValidationError``."""
    return inbound_event_adapter.validate_json(raw)


class OutboundModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self, exclude_none: bool = False) -> dict:
        return self.model_dump(by_alias=True, exclude_none=exclude_none)


class GameSnapshot(OutboundModel):
    fen: str
    turn: str
    is_game_over: bool
    is_check: bool
    is_checkmate: bool
    is_draw: bool
    is_stalemate: bool
    is_threefold_repetition: bool
    is_insufficient_material: bool
    status: str


class InitPayload(GameSnapshot):
    room_id: str
    color: str
    reconnect_token: Optional[str] = None


class MovePayload(OutboundModel):
    from_square: str = Field(alias="from")
    to_square: str = Field(alias="to")
    san: str
    color: str


class StatePayload(GameSnapshot):
    move: Optional[MovePayload] = None


class RoomStatePayload(OutboundModel):
    players: Dict[str, Optional[str]]
    spectators: List[str]


class GameOverPayload(OutboundModel):
    reason: str
    winner: str
    fen: str
