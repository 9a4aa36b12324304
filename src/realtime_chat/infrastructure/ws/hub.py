"""Per-process owner of all realtime chat state.

The hub wires the registry, membership store, typing broadcaster, message
pipeline and read-receipt tracker around one ``ChatStorage`` and dispatches
decoded client frames to them.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, assert_never
from uuid import UUID

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import AppError, InternalError
from realtime_chat.application.ports.clock import Clock
from realtime_chat.application.ports.storage import ChatStorage
from realtime_chat.config import Settings, settings as default_settings
from realtime_chat.domain.entities.message import Message
from realtime_chat.infrastructure.ws.connection import Connection
from realtime_chat.infrastructure.ws.membership import ChatMembershipStore
from realtime_chat.infrastructure.ws.pipeline import MessagePipeline
from realtime_chat.infrastructure.ws.protocol import (
    ConnectionInfo,
    ConnectionSuccess,
    ErrorEvent,
    JoinChat,
    LeaveChat,
    MarkRead,
    Ping,
    Pong,
    SendMessage,
    StartTyping,
    StopTyping,
    WsInbound,
    parse_inbound,
)
from realtime_chat.infrastructure.ws.receipts import ReadReceiptTracker
from realtime_chat.infrastructure.ws.registry import ConnectionRegistry
from realtime_chat.infrastructure.ws.typing_indicator import TypingBroadcaster

logger = logging.getLogger(__name__)


class ChatHub:
    def __init__(
        self,
        storage: ChatStorage,
        *,
        instance_id: str | None = None,
        typing_timeout: float = 3.0,
        persist_timeout: float = 5.0,
        lookup_timeout: float = 3.0,
        participant_cache_size: int = 10_000,
        send_queue_size: int = 256,
        max_length: int | None = None,
        mark_read_on_join: bool = True,
        clock: Clock | None = None,
    ) -> None:
        self.instance_id = instance_id
        self.membership = ChatMembershipStore(
            storage, lookup_timeout=lookup_timeout, cache_size=participant_cache_size
        )
        self.typing = TypingBroadcaster(self.membership, timeout=typing_timeout)
        self.registry = ConnectionRegistry(self.membership, self.typing)
        self.pipeline = MessagePipeline(
            storage,
            self.membership,
            self.typing,
            persist_timeout=persist_timeout,
            max_length=max_length,
        )
        self.receipts = ReadReceiptTracker(
            storage, self.membership, timeout=persist_timeout
        )
        self._send_queue_size = send_queue_size
        self._mark_read_on_join = mark_read_on_join
        self._clock = clock

    @classmethod
    def from_settings(cls, storage: ChatStorage, cfg: Settings = default_settings) -> ChatHub:
        return cls(
            storage,
            instance_id=cfg.INSTANCE_ID,
            typing_timeout=cfg.TYPING_TIMEOUT_SECONDS,
            persist_timeout=cfg.PERSIST_TIMEOUT_SECONDS,
            lookup_timeout=cfg.LOOKUP_TIMEOUT_SECONDS,
            participant_cache_size=cfg.PARTICIPANT_CACHE_SIZE,
            send_queue_size=cfg.WS_SEND_QUEUE_SIZE,
            max_length=cfg.MESSAGE_MAX_LENGTH,
            mark_read_on_join=cfg.MARK_READ_ON_JOIN,
        )

    # --- connection lifecycle ----------------------------------------------

    async def connect(self, identity: Identity) -> Connection:
        connection = Connection(
            identity, queue_size=self._send_queue_size, clock=self._clock
        )
        await self.registry.register(connection)
        connection.send(
            ConnectionSuccess(
                data=ConnectionInfo(
                    user_id=identity.user_id,
                    is_provider=identity.is_provider,
                    connection_id=connection.handle,
                )
            )
        )
        return connection

    async def disconnect(self, connection: Connection) -> None:
        await self.registry.unregister(connection)

    # --- inbound frames ----------------------------------------------------

    async def dispatch(self, connection: Connection, raw: str | bytes) -> None:
        """Decode and handle one client frame.

        Failures are reported to this connection only as an ``error`` event;
        the connection stays open.
        """
        connection.touch()
        try:
            await self.handle(connection, parse_inbound(raw))
        except AppError as exc:
            logger.info("%r: %s (%s)", connection, exc.code, exc.detail)
            connection.send(ErrorEvent.from_error(exc))
        except Exception:
            logger.exception("Unhandled error for %r", connection)
            connection.send(ErrorEvent.from_error(InternalError("Unexpected server error")))

    async def handle(self, connection: Connection, frame: WsInbound) -> None:
        match frame:
            case JoinChat(data=data):
                await self.membership.join(connection, data.chat_id)
                if self._mark_read_on_join:
                    await self.receipts.mark_read(connection, data.chat_id)
            case LeaveChat(data=data):
                await self.typing.stop(connection, data.chat_id)
                await self.membership.leave(connection, data.chat_id)
            case SendMessage(data=data):
                await self.pipeline.send(
                    connection, data.chat_id, data.content, data.temp_id
                )
            case StartTyping(data=data):
                await self.typing.start(connection, data.chat_id)
            case StopTyping(data=data):
                await self.typing.stop(connection, data.chat_id)
            case MarkRead(data=data):
                await self.receipts.mark_read(connection, data.chat_id)
            case Ping():
                connection.send(Pong())
            case _:
                assert_never(frame)

    # --- events from other writers -----------------------------------------

    async def relay(self, event_type: str, data: dict[str, Any]) -> None:
        """Fan out an outbox event relayed over Pub/Sub.

        Events this instance wrote itself were already delivered in-process
        and are skipped.
        """
        if self.instance_id is not None and data.get("origin") == self.instance_id:
            return
        try:
            if event_type == "chat.message_created":
                await self.pipeline.deliver(_message_from_payload(data["message"]))
            elif event_type == "chat.messages_read":
                await self.receipts.deliver(
                    UUID(data["chat_id"]),
                    is_provider=bool(data["is_provider"]),
                    reader_id=int(data["reader_id"]),
                )
            else:
                logger.debug("Ignoring relayed event %s", event_type)
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed relayed %s event: %r", event_type, data)

    def is_online(self, user_id: int) -> bool:
        return self.registry.is_online(user_id)


def _message_from_payload(raw: dict[str, Any]) -> Message:
    return Message(
        message_id=UUID(raw["message_id"]),
        chat_id=UUID(raw["chat_id"]),
        sender_id=int(raw["sender_id"]),
        is_provider=bool(raw["is_provider"]),
        content=raw["content"],
        timestamp=datetime.fromisoformat(raw["timestamp"]),
        read_by_user=bool(raw["read_by_user"]),
        read_by_provider=bool(raw["read_by_provider"]),
    )
