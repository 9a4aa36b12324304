from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from realtime_chat.api.v1.schemas.common import PaginatedResponse


class SendMessageRequest(BaseModel):
    content: str


class MessageResponse(BaseModel):
    message_id: UUID
    chat_id: UUID
    sender_id: int
    is_provider: bool
    content: str
    timestamp: datetime
    read_by_user: bool
    read_by_provider: bool

    model_config = {"from_attributes": True}


MessagePageResponse = PaginatedResponse[MessageResponse]
