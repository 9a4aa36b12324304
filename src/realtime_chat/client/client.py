"""Consumer-side chat session: optimistic sends reconciled against server events.

``ChatClient`` is a small state machine (disconnected, connecting, connected,
joined) with one inbound queue of decoded server frames and one outbound
queue of client frames. The transport is any :class:`ClientLink`;
:func:`websocket_connector` provides one over ``websockets``.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, assert_never
from urllib.parse import urlencode
from uuid import UUID

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import ProtocolError
from realtime_chat.client.state import ChatTimeline, ConnectionState, LocalMessage, new_temp_id
from realtime_chat.infrastructure.ws.protocol import (
    ChatJoined,
    ChatLeft,
    ChatRef,
    ConnectionSuccess,
    ErrorEvent,
    JoinChat,
    LeaveChat,
    MarkRead,
    MessagePayload,
    MessageReceived,
    MessageSent,
    MessagesRead,
    Ping,
    Pong,
    SendMessage,
    SendMessageData,
    StartTyping,
    StopTyping,
    TypingStarted,
    TypingStopped,
    UserOffline,
    UserOnline,
    WsOutbound,
    parse_outbound,
)

logger = logging.getLogger(__name__)


class LinkClosed(Exception):
    """The transport is gone (or could not be opened)."""


class ClientLink(Protocol):
    async def send(self, text: str) -> None: ...

    async def receive(self) -> str: ...

    async def close(self) -> None: ...


Connector = Callable[[], Awaitable[ClientLink]]
HistoryLoader = Callable[[UUID], Awaitable[list[MessagePayload]]]


class WebSocketLink:
    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    async def send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except ConnectionClosed as exc:
            raise LinkClosed(str(exc)) from exc

    async def receive(self) -> str:
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise LinkClosed(str(exc)) from exc
        return raw.decode() if isinstance(raw, bytes) else raw

    async def close(self) -> None:
        await self._ws.close()


def websocket_connector(url: str, token: str) -> Connector:
    """Connector for ``ws://host/ws/chat`` authenticating with *token*."""

    async def _connect() -> ClientLink:
        try:
            ws = await connect(f"{url}?{urlencode({'token': token})}")
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise LinkClosed(str(exc)) from exc
        return WebSocketLink(ws)

    return _connect


class ChatClient:
    def __init__(
        self,
        connector: Connector,
        identity: Identity,
        *,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        typing_timeout: float = 3.0,
        heartbeat_interval: float | None = 20.0,
        history_loader: HistoryLoader | None = None,
    ) -> None:
        self._connector = connector
        self.identity = identity
        self._reconnect_attempts = reconnect_attempts
        self._reconnect_delay = reconnect_delay
        self._typing_timeout = typing_timeout
        # Keep below the server idle timeout so a listen-only session stays up.
        self._heartbeat_interval = heartbeat_interval
        self._history_loader = history_loader

        self.state = ConnectionState.DISCONNECTED
        self.timeline = ChatTimeline()
        self.online: set[int] = set()
        self.peer_typing: set[int] = set()
        self.connection_id: str | None = None
        self.events: asyncio.Queue[WsOutbound] = asyncio.Queue()

        self._outbound: asyncio.Queue[str] = asyncio.Queue()
        self._unsent: str | None = None
        self._link: ClientLink | None = None
        self._reader: asyncio.Task[None] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._typing_timer: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def active_chat(self) -> UUID | None:
        return self.timeline.chat_id

    # --- lifecycle ---------------------------------------------------------

    async def connect(self) -> None:
        self._closing = False
        await self._establish()

    async def close(self) -> None:
        """Cancel timers and tasks and drop the connection."""
        self._closing = True
        self._cancel_typing_timer()
        tasks = [t for t in (self._reader, self._writer, self._heartbeat) if t is not None]
        for task in tasks:
            if task is not asyncio.current_task():
                task.cancel()
        await asyncio.gather(
            *(t for t in tasks if t is not asyncio.current_task()),
            return_exceptions=True,
        )
        if self._link is not None:
            await self._link.close()
            self._link = None
        self.state = ConnectionState.DISCONNECTED

    async def _establish(self) -> None:
        self.state = ConnectionState.CONNECTING
        for attempt in range(1, self._reconnect_attempts + 1):
            try:
                link = await self._connector()
                # Rejoin before anything queued goes out.
                if self.timeline.chat_id is not None:
                    await link.send(JoinChat(data=ChatRef(chat_id=self.timeline.chat_id)).to_json())
            except LinkClosed as exc:
                logger.info("Connect attempt %d/%d failed: %s", attempt, self._reconnect_attempts, exc)
                if attempt < self._reconnect_attempts:
                    await asyncio.sleep(self._reconnect_delay)
                continue
            # Stays CONNECTING until the server confirms with connection:success.
            self._link = link
            self._reader = asyncio.create_task(self._read_loop(link), name="chat-client-read")
            self._writer = asyncio.create_task(self._write_loop(link), name="chat-client-write")
            if self._heartbeat_interval:
                self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name="chat-client-heartbeat")
            return
        self.state = ConnectionState.DISCONNECTED
        raise ConnectionError(f"Could not connect after {self._reconnect_attempts} attempts")

    async def _read_loop(self, link: ClientLink) -> None:
        try:
            while True:
                raw = await link.receive()
                try:
                    frame = parse_outbound(raw)
                except ProtocolError as exc:
                    logger.warning("Dropping malformed server frame: %s", exc.detail)
                    continue
                self._apply(frame)
                self.events.put_nowait(frame)
        except LinkClosed:
            if self._closing:
                return
            logger.info("Connection lost, reconnecting")
            await self._on_link_lost()

    async def _on_link_lost(self) -> None:
        for task in (self._writer, self._heartbeat):
            if task is not None:
                task.cancel()
        self._heartbeat = None
        self._link = None
        self.state = ConnectionState.DISCONNECTED
        self.online.clear()
        self.peer_typing.clear()
        try:
            await self._establish()
        except ConnectionError:
            logger.warning("Giving up reconnecting")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            self._emit(Ping())

    async def _write_loop(self, link: ClientLink) -> None:
        while True:
            if self._unsent is None:
                self._unsent = await self._outbound.get()
            try:
                await link.send(self._unsent)
            except LinkClosed:
                return
            self._unsent = None

    # --- user actions ------------------------------------------------------

    async def open_chat(self, chat_id: UUID) -> None:
        """Join *chat_id* and show it; unconfirmed sends of the same chat survive."""
        current = self.timeline.chat_id
        if current is not None and current != chat_id:
            self._cancel_typing_timer()
            self._emit(LeaveChat(data=ChatRef(chat_id=current)))
        self.timeline.reset(chat_id, keep_pending=current == chat_id)
        self.peer_typing.clear()
        self._emit(JoinChat(data=ChatRef(chat_id=chat_id)))
        if self.state is ConnectionState.CONNECTED:
            self.state = ConnectionState.JOINED
        if self._history_loader is not None:
            self.timeline.load_history(await self._history_loader(chat_id))

    def close_chat(self) -> None:
        chat_id = self.timeline.chat_id
        if chat_id is None:
            return
        self._cancel_typing_timer()
        self._emit(LeaveChat(data=ChatRef(chat_id=chat_id)))
        self.timeline.reset(None)
        self.peer_typing.clear()
        if self.state is ConnectionState.JOINED:
            self.state = ConnectionState.CONNECTED

    def send_message(self, content: str) -> LocalMessage | None:
        chat_id = self.timeline.chat_id
        text = content.strip()
        if chat_id is None or not text:
            return None
        entry = self.timeline.add_optimistic(
            self.identity.user_id, self.identity.is_provider, text, new_temp_id()
        )
        self._emit(SendMessage(data=SendMessageData(chat_id=chat_id, content=text, temp_id=entry.temp_id)))
        self._cancel_typing_timer()
        self._emit(StopTyping(data=ChatRef(chat_id=chat_id)))
        return entry

    def start_typing(self) -> None:
        chat_id = self.timeline.chat_id
        if chat_id is None:
            return
        self._emit(StartTyping(data=ChatRef(chat_id=chat_id)))
        self._cancel_typing_timer()
        self._typing_timer = asyncio.create_task(self._typing_expiry(chat_id), name="chat-client-typing")

    def stop_typing(self) -> None:
        chat_id = self.timeline.chat_id
        if chat_id is None:
            return
        self._cancel_typing_timer()
        self._emit(StopTyping(data=ChatRef(chat_id=chat_id)))

    def mark_read(self) -> None:
        if self.timeline.chat_id is not None:
            self._emit(MarkRead(data=ChatRef(chat_id=self.timeline.chat_id)))

    # --- internals ---------------------------------------------------------

    def _emit(
        self, frame: JoinChat | LeaveChat | SendMessage | StartTyping | StopTyping | MarkRead | Ping
    ) -> None:
        self._outbound.put_nowait(frame.to_json())

    async def _typing_expiry(self, chat_id: UUID) -> None:
        await asyncio.sleep(self._typing_timeout)
        self._typing_timer = None
        self._emit(StopTyping(data=ChatRef(chat_id=chat_id)))

    def _cancel_typing_timer(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None

    def _apply(self, frame: WsOutbound) -> None:
        match frame:
            case ConnectionSuccess(data=data):
                self.connection_id = data.connection_id
                self.state = (
                    ConnectionState.JOINED
                    if self.timeline.chat_id is not None
                    else ConnectionState.CONNECTED
                )
            case ChatJoined() | ChatLeft() | Pong():
                pass
            case MessageSent(data=data):
                self.timeline.acknowledge(data, data.temp_id)
            case MessageReceived(data=data):
                self.timeline.receive(data)
            case MessagesRead(data=data):
                self.timeline.apply_read(data.chat_id, is_provider=data.is_provider)
            case TypingStarted(data=data):
                if data.chat_id == self.timeline.chat_id:
                    self.peer_typing.add(data.user_id)
            case TypingStopped(data=data):
                self.peer_typing.discard(data.user_id)
            case UserOnline(data=data):
                self.online.add(data.user_id)
            case UserOffline(data=data):
                self.online.discard(data.user_id)
            case ErrorEvent(data=data):
                logger.info("Server error %s: %s", data.code, data.message)
                if data.temp_id is not None:
                    self.timeline.fail(data.temp_id)
                elif (
                    data.code in ("forbidden", "not_found")
                    and data.chat_id is not None
                    and data.chat_id == self.timeline.chat_id
                ):
                    self.timeline.reset(None)
                    self.state = ConnectionState.CONNECTED
            case _:
                assert_never(frame)
