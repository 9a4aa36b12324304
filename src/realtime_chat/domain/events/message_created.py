from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from realtime_chat.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message: Message
    origin: str | None = None

    event_type: ClassVar[str] = "chat.message_created"

    def to_payload(self) -> dict[str, Any]:
        m = self.message
        return {
            "origin": self.origin,
            "chat_id": str(m.chat_id),
            "message": {
                "message_id": str(m.message_id),
                "chat_id": str(m.chat_id),
                "sender_id": m.sender_id,
                "is_provider": m.is_provider,
                "content": m.content,
                "timestamp": m.timestamp.isoformat(),
                "read_by_user": m.read_by_user,
                "read_by_provider": m.read_by_provider,
            },
        }
