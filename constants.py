import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

ROOM_ID_PATTERN = r"^[A-Za-z0-9_-]+$"
ROOM_ID_MIN_LENGTH = int(os.getenv("ROOM_ID_MIN_LENGTH", 3))
ROOM_ID_MAX_LENGTH = int(os.getenv("ROOM_ID_MAX_LENGTH", 50))

# 0 disables seat reservations: a freed seat goes to the next joiner
RECONNECT_GRACE_SECONDS = float(os.getenv("RECONNECT_GRACE_SECONDS", 0))

# Seats
WHITE = "w"
BLACK = "b"
SPECTATOR = "s"
PLAYER_COLORS = (WHITE, BLACK)

# Room status
STATUS_WAITING = "waiting"
STATUS_PLAYING = "playing"
STATUS_FINISHED = "finished"

DEFAULT_PROMOTION = "q"
