from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from routers.rooms import rooms_router
from backend import RoomRegistry
from coordinator import EventRouter
from fanout import BroadcastFanout, ConnectionId
from rules import ChessRulesEngine, RulesEngine
from sessions import SessionStore
from event_names import EVENT_ERROR_MESSAGE
from schemas.events import parse_inbound
import uuid
import asyncio
from typing import Any, Optional
from constants import CORS_ALLOW_ORIGINS, LOG_FILE, LOG_LEVEL, RECONNECT_GRACE_SECONDS
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

MSG_MALFORMED = "malformed message"


class WebSocketConnection:
    """Outbound side of one WebSocket.

    ``send`` only enqueues; ``run_writer`` drains the queue so a slow or dead
    peer never blocks the coordinator.
    """

    def __init__(self, connection_id: ConnectionId, websocket: WebSocket):
        self.id = connection_id
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue()
        self.loop = asyncio.get_running_loop()
        self.closed = False

    def send(self, event: str, payload: Any) -> None:
        if self.closed:
            return
        # the coordinator may run off the event loop thread
        self.loop.call_soon_threadsafe(self.queue.put_nowait, {"event": event, "data": payload})

    async def run_writer(self):
        while True:
            message = await self.queue.get()
            if message is None:
                break
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                # at-most-once delivery: drop the frame, the next state supersedes it
                logger.warning(f"Error sending {message['event']} to connection {self.id}: {e}")

    def close(self):
        self.closed = True
        self.loop.call_soon_threadsafe(self.queue.put_nowait, None)


def create_app(engine: Optional[RulesEngine] = None, reconnect_grace_seconds: float = RECONNECT_GRACE_SECONDS) -> FastAPI:
    app = FastAPI(title="Chess Rooms")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)

    registry = RoomRegistry(engine or ChessRulesEngine())
    app.state.registry = registry
    app.state.coordinator = EventRouter(
        registry,
        SessionStore(),
        BroadcastFanout(),
        reconnect_grace_seconds=reconnect_grace_seconds,
    )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """One game session per socket. The client must send ``join`` first;
        everything else before that is ignored by the coordinator."""
        coordinator: EventRouter = websocket.app.state.coordinator

        await websocket.accept()
        connection_id = ConnectionId(str(uuid.uuid4()))
        connection = WebSocketConnection(connection_id, websocket)
        coordinator.connect(connection)
        writer = asyncio.create_task(connection.run_writer())
        logger.info(f"WebSocket connection {connection_id} accepted")

        try:
            message_count = 0
            while True:
                try:
                    data = await websocket.receive_text()
                except WebSocketDisconnect:
                    logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                    break
                except Exception as e:
                    logger.error(f"Error receiving message from connection {connection_id}: {e}", exc_info=True)
                    break

                message_count += 1
                logger.debug(f"Received message #{message_count} from connection {connection_id}")

                try:
                    event = parse_inbound(data)
                except ValidationError as e:
                    logger.warning(f"Malformed message from connection {connection_id}: {e.error_count()} errors")
                    connection.send(EVENT_ERROR_MESSAGE, MSG_MALFORMED)
                    continue

                try:
                    coordinator.dispatch(connection_id, event)
                except Exception as e:
                    logger.error(f"Error handling {event.event} from connection {connection_id}: {e}", exc_info=True)
        finally:
            coordinator.disconnect(connection_id)
            connection.close()
            try:
                await writer
            except Exception as e:
                logger.debug(f"Writer for connection {connection_id} ended with error: {e}")
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")

    logger.info("FastAPI application initialized")
    return app


app = create_app()
