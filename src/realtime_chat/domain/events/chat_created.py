from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ChatCreated:
    chat_id: UUID
    user_id: int
    provider_id: int
    service_request_id: int | None = None

    event_type: ClassVar[str] = "chat.chat_created"

    def to_payload(self) -> dict[str, Any]:
        return {
            "chat_id": str(self.chat_id),
            "user_id": self.user_id,
            "provider_id": self.provider_id,
            "service_request_id": self.service_request_id,
        }
