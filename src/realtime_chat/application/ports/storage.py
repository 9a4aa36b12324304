from __future__ import annotations

from typing import Protocol
from uuid import UUID

from realtime_chat.application.dto.identity import Identity
from realtime_chat.domain.entities.chat import Chat
from realtime_chat.domain.entities.message import Message


class ChatStorage(Protocol):
    """Durable chat/message records as seen by the realtime hub.

    Implementations raise ``NotFoundError`` for unknown chats; any other
    failure is treated by callers as a persistence failure.
    """

    async def get_chat_participants(self, chat_id: UUID) -> Chat: ...

    async def persist_message(
        self, chat_id: UUID, sender: Identity, content: str
    ) -> Message: ...

    async def mark_chat_read(self, chat_id: UUID, reader: Identity) -> int:
        """Flip the reader's role flag on unread messages; return how many changed."""
        ...
