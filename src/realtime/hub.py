"""Repository channel hub for real-time notifications.

Keeps a registry of live connections keyed by repository and broadcasts
messages to them. Registry mutation and membership snapshots are serialized
through a single asyncio lock; sends happen outside the lock against the
snapshot taken when the broadcast started.
"""

import asyncio
from typing import Any

import structlog

from src.realtime.connection import ConnectionHandle
from src.realtime.messages import (
    MESSAGE_ROUTES,
    ChannelMessage,
    InboundMessageType,
    InvalidMessageError,
    OutboundMessageType,
)

logger = structlog.get_logger(__name__)


class ChannelHub:
    """Registry of live connections grouped by repository channel.

    Provides:
    - Lazy channel creation on first connect, removal on last disconnect
    - Broadcasts to open connections with optional sender exclusion
    - Routing of inbound client frames to outbound broadcasts
    - Server-side push through notify_repository_update
    """

    def __init__(self) -> None:
        """Initialize an empty hub."""
        self._channels: dict[str, set[ConnectionHandle]] = {}
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="channel_hub")

    async def connect(self, repository_id: str, connection: ConnectionHandle) -> None:
        """Add a connection to a repository channel.

        Args:
            repository_id: Repository channel to join.
            connection: Connection to add.
        """
        async with self._lock:
            members = self._channels.get(repository_id)
            if members is None:
                members = set()
                self._channels[repository_id] = members
                self._logger.debug("channel_created", repository_id=repository_id)
            members.add(connection)
            count = len(members)

        self._logger.info(
            "connection_joined",
            repository_id=repository_id,
            connection=connection.identity,
            channel_size=count,
        )

    async def disconnect(self, repository_id: str, connection: ConnectionHandle) -> None:
        """Remove a connection, dropping the channel when it becomes empty.

        Args:
            repository_id: Repository channel to leave.
            connection: Connection to remove.
        """
        async with self._lock:
            members = self._channels.get(repository_id)
            if members is None:
                return
            members.discard(connection)
            if not members:
                del self._channels[repository_id]
                self._logger.debug("channel_removed", repository_id=repository_id)

        self._logger.info(
            "connection_left",
            repository_id=repository_id,
            connection=connection.identity,
        )

    async def broadcast(
        self,
        repository_id: str,
        exclude: ConnectionHandle | None,
        message: ChannelMessage,
    ) -> int:
        """Send a message to every open connection of a channel.

        Broadcasting to a repository without a channel is a no-op. A
        connection failing mid-broadcast does not stop the others.

        Args:
            repository_id: Target repository channel.
            exclude: Connection to skip (usually the sender), or None.
            message: Message to send.

        Returns:
            Number of connections the message was sent to.
        """
        async with self._lock:
            members = self._channels.get(repository_id)
            snapshot = list(members) if members else []

        recipients = [c for c in snapshot if c is not exclude and c.is_open()]
        if not recipients:
            return 0

        frame = message.to_json()
        results = await asyncio.gather(
            *(self._safe_send(connection, frame) for connection in recipients)
        )
        sent = sum(1 for ok in results if ok)

        self._logger.debug(
            "message_broadcast",
            repository_id=repository_id,
            message_type=message.type,
            recipients=len(recipients),
            sent=sent,
        )
        return sent

    async def _safe_send(self, connection: ConnectionHandle, frame: str) -> bool:
        """Send a frame, reporting failure instead of raising.

        The connection is left registered; it is pruned by its own close.
        """
        try:
            await connection.send(frame)
        except Exception as e:
            self._logger.debug(
                "send_failed",
                connection=connection.identity,
                error=str(e),
            )
            return False
        return True

    async def handle_message(
        self,
        repository_id: str,
        sender: ConnectionHandle,
        raw: str | bytes,
    ) -> int:
        """Route an inbound client frame to a channel broadcast.

        Malformed frames and unknown message types are logged and ignored.

        Args:
            repository_id: Channel the sender belongs to.
            sender: Connection the frame came from.
            raw: Raw JSON frame.

        Returns:
            Number of connections the resulting message was sent to.
        """
        try:
            inbound = ChannelMessage.parse(raw)
        except InvalidMessageError as e:
            self._logger.warning(
                "invalid_message",
                repository_id=repository_id,
                connection=sender.identity,
                error=str(e),
            )
            return 0

        try:
            route = MESSAGE_ROUTES[InboundMessageType(inbound.type)]
        except ValueError:
            self._logger.warning(
                "unknown_message_type",
                repository_id=repository_id,
                message_type=inbound.type,
            )
            return 0

        outbound = ChannelMessage.outbound(route.outbound, inbound.payload)
        return await self.broadcast(
            repository_id,
            sender if route.exclude_sender else None,
            outbound,
        )

    async def notify_repository_update(
        self,
        repository_id: str,
        message_type: OutboundMessageType | str,
        payload: Any,
    ) -> int:
        """Push a server-originated notification to every client of a repository.

        Args:
            repository_id: Target repository channel.
            message_type: Outbound message type.
            payload: Message payload.

        Returns:
            Number of connections notified.
        """
        return await self.broadcast(
            repository_id,
            None,
            ChannelMessage.outbound(message_type, payload),
        )

    async def active_channels(self) -> set[str]:
        """Repository IDs that currently have at least one connection."""
        async with self._lock:
            return set(self._channels)

    async def connection_count(self, repository_id: str | None = None) -> int:
        """Number of registered connections in one channel, or in all of them."""
        async with self._lock:
            if repository_id is not None:
                return len(self._channels.get(repository_id, ()))
            return sum(len(members) for members in self._channels.values())


# Global hub instance
_channel_hub: ChannelHub | None = None


def get_channel_hub() -> ChannelHub:
    """Get the global channel hub.

    Returns:
        Singleton ChannelHub.
    """
    global _channel_hub
    if _channel_hub is None:
        _channel_hub = ChannelHub()
    return _channel_hub


def set_channel_hub(hub: ChannelHub | None) -> None:
    """Set the global channel hub.

    Useful for testing.

    Args:
        hub: ChannelHub instance.
    """
    global _channel_hub
    _channel_hub = hub
