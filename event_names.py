# Inbound (connection -> coordinator)
EVENT_JOIN = "join"  # {roomId, name?, token?}
EVENT_MOVE = "move"  # {from, to, promotion?}
EVENT_RESIGN = "resign"  # {}
EVENT_RESTART = "restart"  # {}

# Outbound (coordinator -> connection(s))
EVENT_INIT = "init"  # unicast - seat, game snapshot, reconnect token
EVENT_STATE = "state"  # broadcast - game snapshot, plus move when caused by one
EVENT_ROOM_STATE = "room_state"  # broadcast - seat occupancy
EVENT_STATUS_MESSAGE = "status_message"  # broadcast - free text
EVENT_ERROR_MESSAGE = "error_message"  # unicast - free text
EVENT_INVALID_MOVE = "invalid_move"  # unicast - free text reason
EVENT_GAME_OVER = "game_over"  # broadcast - {reason, winner, fen}

# **Wire envelope**
# - Every frame in both directions is a JSON object `{"event": <name>, "data": <payload>}`.
# - `status_message`, `error_message` and `invalid_move` carry a plain string as `data`.
# - Inbound frames that are not JSON or name an unknown event get an `error_message`.

# **Example `room_state` payload**
# - `players` = `{"w": <connection id or null>, "b": <connection id or null>}`
# - `spectators` = list of connection ids, no ordering significance
