import time

import pytest
from fastapi.testclient import TestClient

from app import create_app


@pytest.fixture
def client():
    with TestClient(create_app()) as client:
        yield client


def receive_until(ws, event):
    """Read frames until one named ``event`` arrives; return its data."""
    for _ in range(10):
        message = ws.receive_json()
        if message["event"] == event:
            return message["data"]
    raise AssertionError(f"no {event!r} frame received")


def join(ws, room_id, **extra):
    ws.send_json({"event": "join", "data": {"roomId": room_id, **extra}})
    init = receive_until(ws, "init")
    receive_until(ws, "room_state")
    receive_until(ws, "status_message")
    return init


def test_two_players_and_a_move(client):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        init_a = join(a, "abc123")
        assert init_a["color"] == "w"
        assert init_a["turn"] == "w"
        assert init_a["status"] == "waiting"

        init_b = join(b, "abc123")
        assert init_b["color"] == "b"
        assert init_b["status"] == "playing"

        occupancy = receive_until(a, "room_state")
        assert occupancy["players"]["w"] and occupancy["players"]["b"]
        assert occupancy["spectators"] == []
        assert receive_until(a, "status_message") == "Black player joined"

        a.send_json({"event": "move", "data": {"from": "e2", "to": "e4"}})
        for ws in (a, b):
            state = receive_until(ws, "state")
            assert state["move"] == {"from": "e2", "to": "e4", "san": "e4", "color": "w"}
            assert state["turn"] == "b"


def test_invalid_room_id_gets_error_message(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "join", "data": {"roomId": "no spaces allowed"}})
        assert ws.receive_json() == {"event": "error_message", "data": "invalid room id"}


def test_malformed_frames_get_error_message(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("definitely not json")
        assert ws.receive_json() == {"event": "error_message", "data": "malformed message"}
        ws.send_json({"event": "teleport", "data": {}})
        assert ws.receive_json() == {"event": "error_message", "data": "malformed message"}


def test_spectator_move_rejected(client):
    with client.websocket_connect("/ws") as a, \
            client.websocket_connect("/ws") as b, \
            client.websocket_connect("/ws") as c:
        join(a, "room-x")
        join(b, "room-x")
        assert join(c, "room-x")["color"] == "s"

        c.send_json({"event": "move", "data": {"from": "e2", "to": "e4"}})
        assert receive_until(c, "invalid_move") == "spectator cannot move"


def test_resign_broadcasts_game_over(client):
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        join(a, "resign-room")
        join(b, "resign-room")

        a.send_json({"event": "resign"})
        for ws in (a, b):
            game_over = receive_until(ws, "game_over")
            assert game_over["reason"] == "resign"
            assert game_over["winner"] == "b"


def test_disconnect_notifies_and_room_details(client):
    with client.websocket_connect("/ws") as a:
        join(a, "detail-room")
        with client.websocket_connect("/ws") as b:
            join(b, "detail-room")
            details = client.get("/rooms/detail-room").json()
            assert details["status"] == "playing"
            assert details["online_users_count"] == 2
            assert details["is_full"] is True
            # drain the notices caused by b joining
            assert receive_until(a, "status_message") == "Black player joined"

        occupancy = receive_until(a, "room_state")
        assert occupancy["players"]["b"] is None
        assert receive_until(a, "status_message") == "A player disconnected"

        listing = client.get("/rooms/").json()
        assert listing["count"] == 1
        assert listing["rooms"][0]["status"] == "waiting"

    # the server finishes its cleanup after the client side has closed
    for _ in range(50):
        if client.get("/rooms/detail-room").status_code == 404:
            break
        time.sleep(0.02)
    else:
        raise AssertionError("room was not destroyed after the last connection left")


def test_unknown_room_details_404(client):
    response = client.get("/rooms/missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Room not found"
