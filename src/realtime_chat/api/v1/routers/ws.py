from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from realtime_chat.api.deps import get_verifier
from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import UnauthorizedError
from realtime_chat.config import settings
from realtime_chat.infrastructure.ws.connection import Connection
from realtime_chat.infrastructure.ws.hub import ChatHub
from realtime_chat.infrastructure.ws.protocol import Pong

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


async def _authenticate(token: str | None) -> Identity | None:
    if not token:
        return None
    try:
        return await get_verifier().verify(token)
    except UnauthorizedError:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str | None = Query(default=None),
) -> None:
    identity = await _authenticate(token or websocket.cookies.get(settings.AUTH_COOKIE_NAME))
    if identity is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    hub: ChatHub = websocket.app.state.hub
    await websocket.accept()
    connection = await hub.connect(identity)

    tasks = [
        asyncio.create_task(_read_loop(websocket, hub, connection), name=f"ws-read-{connection.handle}"),
        asyncio.create_task(_write_loop(websocket, connection), name=f"ws-write-{connection.handle}"),
        asyncio.create_task(_heartbeat(connection), name=f"ws-heartbeat-{connection.handle}"),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("WS task %s failed for %r", task.get_name(), connection, exc_info=exc)
    finally:
        for task in tasks:
            task.cancel()
        # Presence and typing cleanup must complete even if this handler is cancelled.
        await asyncio.shield(hub.disconnect(connection))
        await asyncio.gather(*tasks, return_exceptions=True)


async def _read_loop(ws: WebSocket, hub: ChatHub, connection: Connection) -> None:
    while not connection.closed:
        raw = await ws.receive_text()
        await hub.dispatch(connection, raw)


async def _write_loop(ws: WebSocket, connection: Connection) -> None:
    while True:
        frame = await connection.next_frame()
        if frame is None:
            break
        await ws.send_text(frame)
    # Closed by the server side (idle timeout or slow consumer).
    try:
        await ws.close()
    except RuntimeError:
        pass


async def _heartbeat(connection: Connection) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    while not connection.closed:
        await asyncio.sleep(interval)
        if connection.idle_for() > settings.WS_IDLE_TIMEOUT_SECONDS:
            logger.info("Closing idle %r", connection)
            connection.close()
            return
        connection.send(Pong())
