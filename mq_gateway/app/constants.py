"""Gateway-level constants shared across modules."""
from __future__ import annotations

from enum import Enum

# Connection property keys.
HOST_NAME_PROPERTY = "host"
CHANNEL_PROPERTY = "channel"
PORT_PROPERTY = "port"
USER_ID_PROPERTY = "user_id"
PASSWORD_PROPERTY = "password"

REQUIRED_PROPERTIES = (HOST_NAME_PROPERTY, CHANNEL_PROPERTY, PORT_PROPERTY)


class MessageFormat:
    NONE = "        "
    STRING = "MQSTR   "


# Legacy PC code page stamped on outgoing messages; 1208 is UTF-8.
PUT_ENCODING = 437
BROWSE_CHARACTER_SET = 1208

DEPTH_NOT_ATTEMPTED = -1
DEPTH_FAILED = 0

RECONNECT_BACKOFF_SECONDS = 0.5


class GatewayState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
