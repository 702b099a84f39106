import pytest

from backend import RoomRegistry
from coordinator import EventRouter
from fanout import BroadcastFanout, ConnectionId
from rules import ChessRulesEngine
from sessions import SessionStore


class RecordingConnection:
    """In-memory connection that keeps every outbound event."""

    def __init__(self, connection_id: str):
        self.id = ConnectionId(connection_id)
        self.events = []

    def send(self, event, payload):
        self.events.append((event, payload))

    def of(self, event):
        return [payload for name, payload in self.events if name == event]

    def last(self, event):
        payloads = self.of(event)
        assert payloads, f"{self.id} received no {event!r} event"
        return payloads[-1]

    def clear(self):
        self.events.clear()


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def engine():
    return ChessRulesEngine()


@pytest.fixture
def registry(engine):
    return RoomRegistry(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_router(registry, clock):
    def _make(reconnect_grace_seconds: float = 0.0):
        return EventRouter(
            registry,
            SessionStore(),
            BroadcastFanout(),
            reconnect_grace_seconds=reconnect_grace_seconds,
            clock=clock,
        )
    return _make


@pytest.fixture
def router(make_router):
    return make_router()


@pytest.fixture
def connect():
    def _connect(router, connection_id: str) -> RecordingConnection:
        connection = RecordingConnection(connection_id)
        router.connect(connection)
        return connection
    return _connect
