"""WebSocket frame models.

Every frame is ``{"event": <name>, "data": {...}}``. Each direction is a
closed union discriminated on ``event``, so anything else fails validation
and surfaces as a ``ProtocolError``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from realtime_chat.application.exceptions import AppError, ProtocolError
from realtime_chat.domain.entities.message import Message


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _Frame(_Model):
    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# --- payloads -------------------------------------------------------------


class ChatRef(_Model):
    chat_id: UUID = Field(alias="chatId")


class SendMessageData(_Model):
    chat_id: UUID = Field(alias="chatId")
    content: str
    temp_id: str | None = Field(default=None, alias="tempId")


class MessagePayload(_Model):
    """Persisted message as delivered to clients (storage field names)."""

    message_id: UUID
    chat_id: UUID
    sender_id: int
    is_provider: bool
    content: str
    timestamp: datetime
    read_by_user: bool
    read_by_provider: bool

    @classmethod
    def from_entity(cls, message: Message) -> MessagePayload:
        return cls(
            message_id=message.message_id,
            chat_id=message.chat_id,
            sender_id=message.sender_id,
            is_provider=message.is_provider,
            content=message.content,
            timestamp=message.timestamp,
            read_by_user=message.read_by_user,
            read_by_provider=message.read_by_provider,
        )


class SentMessagePayload(MessagePayload):
    temp_id: str | None = Field(default=None, alias="tempId")


class ConnectionInfo(_Model):
    user_id: int = Field(alias="userId")
    is_provider: bool = Field(alias="isProvider")
    connection_id: str = Field(alias="connectionId")


class TypingData(_Model):
    chat_id: UUID = Field(alias="chatId")
    user_id: int = Field(alias="userId")
    is_provider: bool = Field(alias="isProvider")


class ReadData(_Model):
    chat_id: UUID = Field(alias="chatId")
    is_provider: bool = Field(alias="isProvider")
    read_by: int | None = Field(default=None, alias="readBy")


class PresenceData(_Model):
    user_id: int = Field(alias="userId")


class ErrorData(_Model):
    message: str
    code: str
    temp_id: str | None = Field(default=None, alias="tempId")
    chat_id: UUID | None = Field(default=None, alias="chatId")


# --- client -> server -----------------------------------------------------


class JoinChat(_Frame):
    event: Literal["chat:join"] = "chat:join"
    data: ChatRef


class LeaveChat(_Frame):
    event: Literal["chat:leave"] = "chat:leave"
    data: ChatRef


class SendMessage(_Frame):
    event: Literal["message:send"] = "message:send"
    data: SendMessageData


class StartTyping(_Frame):
    event: Literal["typing:start"] = "typing:start"
    data: ChatRef


class StopTyping(_Frame):
    event: Literal["typing:stop"] = "typing:stop"
    data: ChatRef


class MarkRead(_Frame):
    event: Literal["messages:read"] = "messages:read"
    data: ChatRef


class Ping(_Frame):
    event: Literal["ping"] = "ping"
    data: dict[str, Any] = Field(default_factory=dict)


WsInbound = Annotated[
    Union[JoinChat, LeaveChat, SendMessage, StartTyping, StopTyping, MarkRead, Ping],
    Field(discriminator="event"),
]


# --- server -> client -----------------------------------------------------


class ConnectionSuccess(_Frame):
    event: Literal["connection:success"] = "connection:success"
    data: ConnectionInfo


class ChatJoined(_Frame):
    event: Literal["chat:joined"] = "chat:joined"
    data: ChatRef


class ChatLeft(_Frame):
    event: Literal["chat:left"] = "chat:left"
    data: ChatRef


class MessageReceived(_Frame):
    event: Literal["message:received"] = "message:received"
    data: MessagePayload


class MessageSent(_Frame):
    event: Literal["message:sent"] = "message:sent"
    data: SentMessagePayload


class TypingStarted(_Frame):
    event: Literal["typing:started"] = "typing:started"
    data: TypingData


class TypingStopped(_Frame):
    event: Literal["typing:stopped"] = "typing:stopped"
    data: TypingData


class MessagesRead(_Frame):
    event: Literal["messages:read"] = "messages:read"
    data: ReadData


class UserOnline(_Frame):
    event: Literal["user:online"] = "user:online"
    data: PresenceData


class UserOffline(_Frame):
    event: Literal["user:offline"] = "user:offline"
    data: PresenceData


class ErrorEvent(_Frame):
    event: Literal["error"] = "error"
    data: ErrorData

    @classmethod
    def from_error(cls, exc: AppError) -> ErrorEvent:
        return cls(
            data=ErrorData(
                message=exc.detail or exc.code,
                code=exc.code,
                temp_id=exc.temp_id,
                chat_id=exc.chat_id,
            )
        )


class Pong(_Frame):
    event: Literal["pong"] = "pong"
    data: dict[str, Any] = Field(default_factory=dict)


WsOutbound = Annotated[
    Union[
        ConnectionSuccess,
        ChatJoined,
        ChatLeft,
        MessageReceived,
        MessageSent,
        TypingStarted,
        TypingStopped,
        MessagesRead,
        UserOnline,
        UserOffline,
        ErrorEvent,
        Pong,
    ],
    Field(discriminator="event"),
]

_inbound_adapter: TypeAdapter[WsInbound] = TypeAdapter(WsInbound)
_outbound_adapter: TypeAdapter[WsOutbound] = TypeAdapter(WsOutbound)


def parse_inbound(raw: str | bytes) -> WsInbound:
    try:
        return _inbound_adapter.validate_json(raw)
    except PydanticValidationError as exc:
        raise ProtocolError(_describe(exc)) from exc


def parse_outbound(raw: str | bytes) -> WsOutbound:
    try:
        return _outbound_adapter.validate_json(raw)
    except PydanticValidationError as exc:
        raise ProtocolError(_describe(exc)) from exc


def _describe(exc: PydanticValidationError) -> str:
    first = exc.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ())) or "frame"
    return f"Malformed frame at {where}: {first.get('msg', 'invalid')}"
