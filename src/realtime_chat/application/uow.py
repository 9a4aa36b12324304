from __future__ import annotations

from typing import Protocol

from realtime_chat.application.repositories.chat import ChatReader, ChatWriter
from realtime_chat.application.repositories.message import MessageReader, MessageWriter
from realtime_chat.application.repositories.outbox import OutboxWriter


class UnitOfWork(Protocol):
    chats: ChatReader
    chats_w: ChatWriter
    messages: MessageReader
    messages_w: MessageWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
