from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class CreateChatRequest(BaseModel):
    provider_id: int = Field(gt=0)
    service_request_id: int | None = None


class ChatResponse(BaseModel):
    chat_id: UUID
    user_id: int
    provider_id: int
    service_request_id: int | None
    created_at: datetime
    last_message: str | None
    last_message_at: datetime | None
    unread_count_user: int
    unread_count_provider: int

    model_config = {"from_attributes": True}


class ReadResponse(BaseModel):
    chat_id: UUID
    updated: int
