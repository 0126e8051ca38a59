"""Real-time message types and frame encoding.

Frames in both directions are JSON objects ``{"type": ..., "payload": ...}``.
Inbound frames from a client are re-broadcast on the repository channel
under their outbound type.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class InboundMessageType(str, Enum):
    """Message types a client may send."""

    FILE_CHANGE = "file_change"
    COMMENT_ADDED = "comment_added"
    PR_STATUS_CHANGE = "pr_status_change"
    ISSUE_UPDATE = "issue_update"


class OutboundMessageType(str, Enum):
    """Message types pushed to clients."""

    FILE_UPDATED = "file_updated"
    NEW_COMMENT = "new_comment"
    PR_UPDATED = "pr_updated"
    ISSUE_UPDATED = "issue_updated"


@dataclass(frozen=True)
class MessageRoute:
    """How an inbound message is re-broadcast.

    Attributes:
        outbound: Type of the broadcast message.
        exclude_sender: Skip the connection the message came from.
    """

    outbound: OutboundMessageType
    exclude_sender: bool = False


# file_change is echo-suppressed for collaborative editing; the rest reach everyone
MESSAGE_ROUTES: dict[InboundMessageType, MessageRoute] = {
    InboundMessageType.FILE_CHANGE: MessageRoute(
        OutboundMessageType.FILE_UPDATED, exclude_sender=True
    ),
    InboundMessageType.COMMENT_ADDED: MessageRoute(OutboundMessageType.NEW_COMMENT),
    InboundMessageType.PR_STATUS_CHANGE: MessageRoute(OutboundMessageType.PR_UPDATED),
    InboundMessageType.ISSUE_UPDATE: MessageRoute(OutboundMessageType.ISSUE_UPDATED),
}


class InvalidMessageError(ValueError):
    """Raised when an inbound frame cannot be decoded."""


@dataclass
class ChannelMessage:
    """A single real-time frame.

    Attributes:
        type: Message type value.
        payload: Message payload.
    """

    type: str
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary for JSON serialization."""
        return {"type": self.type, "payload": self.payload}

    def to_json(self) -> str:
        """Convert message to a JSON frame."""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def outbound(cls, message_type: OutboundMessageType | str, payload: Any) -> "ChannelMessage":
        """Create a message pushed to clients."""
        if isinstance(message_type, OutboundMessageType):
            message_type = message_type.value
        return cls(type=message_type, payload=payload)

    @classmethod
    def parse(cls, raw: str | bytes) -> "ChannelMessage":
        """Decode an inbound frame.

        Args:
            raw: JSON text received from a client.

        Returns:
            Decoded message.

        Raises:
            InvalidMessageError: If the frame is not a JSON object with a
                string ``type``.
        """
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise InvalidMessageError(f"Frame is not valid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise InvalidMessageError("Frame must be an object with a string 'type'")

        return cls(type=data["type"], payload=data.get("payload"))
