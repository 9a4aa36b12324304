from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from realtime_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        chat_id: UUID,
        *,
        before: datetime | None = None,
        limit: int = 50,
    ) -> list[Message]:
        """Newest first; only messages strictly older than *before* when given."""
        ...


class MessageWriter(Protocol):
    async def create(self, message: Message) -> Message: ...

    async def mark_read(self, chat_id: UUID, *, is_provider: bool) -> int:
        """Set the role's read flag on every unread message; return the number changed."""
        ...
