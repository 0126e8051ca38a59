"""WebSocket endpoint for real-time repository updates.

Clients connect with ``/ws?repoId=<repository id>`` and exchange JSON frames
``{"type": ..., "payload": ...}`` with the other clients of that repository.
"""

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from src.realtime.connection import WebSocketConnection
from src.realtime.hub import get_channel_hub

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def repository_channel(
    websocket: WebSocket,
    repo_id: str | None = Query(default=None, alias="repoId"),
) -> None:
    """Join the real-time channel of a repository.

    Connections without a ``repoId`` are closed with a policy violation.
    """
    connection = WebSocketConnection(websocket)

    if not repo_id:
        logger.warning("websocket_rejected", reason="missing_repo_id")
        await connection.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = get_channel_hub()

    # Join before accepting so the client is registered once its handshake completes
    await hub.connect(repo_id, connection)
    try:
        await connection.accept()
        while True:
            raw = await connection.receive()
            await hub.handle_message(repo_id, connection, raw)
    except WebSocketDisconnect as e:
        logger.debug(
            "websocket_disconnected",
            repository_id=repo_id,
            connection=connection.identity,
            code=e.code,
        )
    finally:
        connection.mark_closed()
        await hub.disconnect(repo_id, connection)
