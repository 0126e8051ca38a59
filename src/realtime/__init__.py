"""Real-time repository notifications over WebSockets.

This module groups live client connections into per-repository channels and
broadcasts collaborative-editing and repository updates to them.
"""

from src.realtime.connection import ConnectionHandle, ConnectionState, WebSocketConnection
from src.realtime.hub import ChannelHub, get_channel_hub, set_channel_hub
from src.realtime.messages import (
    MESSAGE_ROUTES,
    ChannelMessage,
    InboundMessageType,
    InvalidMessageError,
    MessageRoute,
    OutboundMessageType,
)

__all__ = [
    # Connections
    "ConnectionHandle",
    "ConnectionState",
    "WebSocketConnection",
    # Hub
    "ChannelHub",
    "get_channel_hub",
    "set_channel_hub",
    # Messages
    "MESSAGE_ROUTES",
    "ChannelMessage",
    "InboundMessageType",
    "InvalidMessageError",
    "MessageRoute",
    "OutboundMessageType",
]
