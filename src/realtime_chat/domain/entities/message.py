from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    message_id: UUID
    chat_id: UUID
    sender_id: int
    is_provider: bool
    content: str
    timestamp: datetime
    read_by_user: bool
    read_by_provider: bool
