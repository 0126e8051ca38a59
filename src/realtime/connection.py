"""Connection handles for the real-time channel hub.

The hub only sees ConnectionHandle: an identity, an open check and an async
send. WebSocketConnection adapts a Starlette/FastAPI WebSocket and tracks the
connection lifecycle ``connecting -> open -> closing -> closed``.
"""

import uuid
from enum import Enum
from typing import Protocol, runtime_checkable

import structlog
from starlette.websockets import WebSocket, WebSocketState

logger = structlog.get_logger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle state of a real-time connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@runtime_checkable
class ConnectionHandle(Protocol):
    """Opaque handle to one live client connection.

    Uses duck typing - any object with these members works.
    """

    @property
    def identity(self) -> str: ...

    def is_open(self) -> bool: ...

    async def send(self, data: str) -> None: ...


class WebSocketConnection:
    """ConnectionHandle backed by a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket, identity: str | None = None) -> None:
        """Wrap a websocket that has not been accepted yet.

        Args:
            websocket: Underlying websocket.
            identity: Optional identity (generated if not provided).
        """
        self._websocket = websocket
        self._identity = identity or f"conn_{uuid.uuid4().hex[:12]}"
        self._state = ConnectionState.CONNECTING

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_open(self) -> bool:
        """Check whether the connection can receive messages."""
        return (
            self._state == ConnectionState.OPEN
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def accept(self) -> None:
        """Accept the websocket handshake and open the connection."""
        await self._websocket.accept()
        self._state = ConnectionState.OPEN
        logger.debug("connection_opened", connection=self._identity)

    async def send(self, data: str) -> None:
        """Send a text frame."""
        await self._websocket.send_text(data)

    async def receive(self) -> str:
        """Receive the next text frame.

        Raises:
            WebSocketDisconnect: When the client goes away.
        """
        return await self._websocket.receive_text()

    async def close(self, code: int = 1000) -> None:
        """Close the connection from the server side."""
        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        self._state = ConnectionState.CLOSING
        try:
            await self._websocket.close(code=code)
        except RuntimeError as e:
            # Starlette raises once the socket is already closed
            logger.debug("connection_close_ignored", connection=self._identity, error=str(e))
        finally:
            self._state = ConnectionState.CLOSED
            logger.debug("connection_closed", connection=self._identity, code=code)

    def mark_closed(self) -> None:
        """Record that the client closed the connection."""
        self._state = ConnectionState.CLOSED

    def __repr__(self) -> str:
        return f"WebSocketConnection(identity={self._identity!r}, state={self._state.value!r})"
