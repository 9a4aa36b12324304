from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from realtime_chat.domain.entities.chat import Chat


class ChatReader(Protocol):
    async def get_by_id(self, chat_id: UUID) -> Chat | None: ...

    async def get_by_service_request(self, service_request_id: int) -> Chat | None: ...

    async def get_between(self, user_id: int, provider_id: int) -> Chat | None:
        """Most recent chat of a customer with a provider that has no service request."""
        ...

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Chat]: ...

    async def list_for_provider(self, provider_id: int, *, limit: int = 50) -> list[Chat]: ...


class ChatWriter(Protocol):
    async def create(self, chat: Chat) -> Chat: ...

    async def record_message(
        self, chat_id: UUID, content: str, ts: datetime, *, from_provider: bool
    ) -> None:
        """Update the last-message summary and bump the recipient's unread counter."""
        ...

    async def reset_unread(self, chat_id: UUID, *, is_provider: bool) -> None: ...
