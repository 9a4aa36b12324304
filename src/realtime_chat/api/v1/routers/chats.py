from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from realtime_chat.api.deps import CurrentIdentity, UoWDep
from realtime_chat.api.v1.schemas.chat import ChatResponse, CreateChatRequest, ReadResponse
from realtime_chat.services import chat_service, read_state_service

router = APIRouter(prefix="/api/v1/chats", tags=["chats"])


@router.post("", response_model=ChatResponse)
async def get_or_create_chat(
    body: CreateChatRequest,
    identity: CurrentIdentity,
    uow: UoWDep,
    response: Response,
) -> ChatResponse:
    chat, created = await chat_service.get_or_create_chat(
        identity.user_id,
        body.provider_id,
        uow,
        service_request_id=body.service_request_id,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return ChatResponse.model_validate(chat, from_attributes=True)


@router.get("", response_model=list[ChatResponse])
async def list_chats(
    identity: CurrentIdentity,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=100),
) -> list[ChatResponse]:
    chats = await chat_service.list_chats(identity, limit, uow)
    return [ChatResponse.model_validate(c, from_attributes=True) for c in chats]


@router.get("/{chat_id}", response_model=ChatResponse)
async def get_chat(
    chat_id: UUID,
    identity: CurrentIdentity,
    uow: UoWDep,
) -> ChatResponse:
    chat = await chat_service.get_chat(chat_id, identity, uow)
    return ChatResponse.model_validate(chat, from_attributes=True)


@router.patch("/{chat_id}/read", response_model=ReadResponse)
async def mark_chat_read(
    chat_id: UUID,
    identity: CurrentIdentity,
    uow: UoWDep,
) -> ReadResponse:
    updated = await read_state_service.mark_read(chat_id, identity, uow)
    return ReadResponse(chat_id=chat_id, updated=updated)
