import threading

from backend import Room, RoomRegistry
from constants import STATUS_FINISHED, STATUS_PLAYING, STATUS_WAITING


def new_room(engine, room_id="room1"):
    return Room(room_id, engine.new_game())


def test_get_or_create_returns_same_room(registry):
    first = registry.get_or_create("abc123")
    second = registry.get_or_create("abc123")

    assert first is second
    assert first.status == STATUS_WAITING
    assert first.seats == {"w": None, "b": None}
    assert first.spectators == set()
    assert len(registry) == 1


def test_concurrent_first_joins_create_one_room(registry):
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(registry.get_or_create("race-room"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len({id(room) for room in results}) == 1
    assert len(registry) == 1


def test_remove_is_idempotent(registry):
    room = registry.get_or_create("abc123")
    registry.remove("abc123")
    registry.remove("abc123")

    assert "abc123" not in registry
    assert room.closed is True
    assert registry.get("abc123") is None


def test_discard_if_empty_keeps_occupied_rooms(registry):
    room = registry.get_or_create("abc123")
    room.assign_seat("A")

    assert registry.discard_if_empty("abc123") is False
    assert "abc123" in registry

    room.release("A", "w")
    assert registry.discard_if_empty("abc123") is True
    assert "abc123" not in registry
    assert registry.discard_if_empty("abc123") is False


def test_seats_fill_white_black_then_spectators(engine):
    room = new_room(engine)

    assert room.assign_seat("A")[0] == "w"
    assert room.assign_seat("B")[0] == "b"
    assert room.assign_seat("C") == ("s", None)
    assert room.assign_seat("D") == ("s", None)
    assert room.spectators == {"C", "D"}
    assert room.recompute_status() == STATUS_PLAYING


def test_player_seats_get_distinct_tokens(engine):
    room = new_room(engine)
    _, white_token = room.assign_seat("A")
    _, black_token = room.assign_seat("B")

    assert white_token and black_token
    assert white_token != black_token


def test_release_ignores_stale_occupant(engine):
    room = new_room(engine)
    room.assign_seat("A")
    room.release("A", "w")
    room.assign_seat("A2")

    # a late cleanup for the first white connection must not evict A2
    assert room.release("A", "w") is False
    assert room.seats["w"] == "A2"


def test_release_spectator(engine):
    room = new_room(engine)
    room.assign_seat("A")
    room.assign_seat("B")
    room.assign_seat("C")

    assert room.release("C", "s") is False
    assert room.spectators == set()
    assert room.recompute_status() == STATUS_PLAYING


def test_reserved_seat_is_skipped_until_expiry(engine):
    room = new_room(engine)
    _, white_token = room.assign_seat("A", now=0)
    room.assign_seat("B", now=0)
    room.release("A", "w", now=10, grace_seconds=30)

    assert room.assign_seat("C", now=20) == ("s", None)
    assert room.recompute_status() == STATUS_WAITING

    seat, token = room.assign_seat("A-again", token=white_token, now=25)
    assert seat == "w"
    assert token and token != white_token
    assert room.reservations == {}


def test_expired_reservation_frees_the_seat(engine):
    room = new_room(engine)
    _, white_token = room.assign_seat("A", now=0)
    room.release("A", "w", now=0, grace_seconds=5)

    assert room.assign_seat("C", now=6)[0] == "w"
    assert room.assign_seat("A-again", token=white_token, now=7)[0] == "b"


def test_finished_status_survives_seat_changes(engine):
    room = new_room(engine)
    room.assign_seat("A")
    room.assign_seat("B")
    room.finish("resign")
    room.assign_seat("C")

    assert room.recompute_status() == STATUS_FINISHED

    room.reset_game(engine.new_game())
    assert room.status == STATUS_PLAYING
    assert room.terminal_reason is None


def test_occupancy_payload(engine):
    room = new_room(engine)
    room.assign_seat("A")
    room.assign_seat("B")
    room.assign_seat("C")

    assert room.occupancy() == {"players": {"w": "A", "b": "B"}, "spectators": ["C"]}
    assert sorted(room.connection_ids()) == ["A", "B", "C"]


def test_registry_uses_engine_for_new_games(engine):
    registry = RoomRegistry(engine)
    room = registry.get_or_create("fresh")
    assert engine.turn(room.game) == "w"
