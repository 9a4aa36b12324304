from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessagesRead:
    chat_id: UUID
    reader_id: int
    is_provider: bool
    origin: str | None = None

    event_type: ClassVar[str] = "chat.messages_read"

    def to_payload(self) -> dict[str, Any]:
        return {
            "origin": self.origin,
            "chat_id": str(self.chat_id),
            "reader_id": self.reader_id,
            "is_provider": self.is_provider,
        }
