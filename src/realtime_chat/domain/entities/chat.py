from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Chat:
    chat_id: UUID
    user_id: int
    provider_id: int
    service_request_id: int | None
    created_at: datetime
    last_message: str | None = None
    last_message_at: datetime | None = None
    unread_count_user: int = 0
    unread_count_provider: int = 0

    def counterpart_of(self, user_id: int) -> int | None:
        """Return the other participant's id, or None if *user_id* is not in the chat."""
        if user_id == self.user_id:
            return self.provider_id
        if user_id == self.provider_id:
            return self.user_id
        return None
