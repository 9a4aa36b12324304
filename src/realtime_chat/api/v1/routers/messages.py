from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query

from realtime_chat.api.deps import CurrentIdentity, UoWDep
from realtime_chat.api.v1.schemas.common import PaginationMeta
from realtime_chat.api.v1.schemas.message import (
    MessagePageResponse,
    MessageResponse,
    SendMessageRequest,
)
from realtime_chat.services import message_service

router = APIRouter(prefix="/api/v1/chats", tags=["messages"])


@router.get("/{chat_id}/messages", response_model=MessagePageResponse)
async def list_messages(
    chat_id: UUID,
    identity: CurrentIdentity,
    uow: UoWDep,
    last_timestamp: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> MessagePageResponse:
    page = await message_service.list_messages(
        chat_id, identity, limit, last_timestamp, uow,
    )
    return MessagePageResponse(
        items=[MessageResponse.model_validate(m, from_attributes=True) for m in page.items],
        pagination=PaginationMeta(
            limit=page.limit,
            last_timestamp=page.last_timestamp,
            has_more=page.has_more,
        ),
    )


@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    chat_id: UUID,
    body: SendMessageRequest,
    identity: CurrentIdentity,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.post_message(chat_id, identity, body.content, uow)
    return MessageResponse.model_validate(msg, from_attributes=True)
