from __future__ import annotations

import uuid

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import ConflictError, ValidationError
from realtime_chat.application.policies.permissions import assert_chat_access
from realtime_chat.application.ports.clock import Clock, SystemClock
from realtime_chat.application.uow import UnitOfWork
from realtime_chat.domain.entities.chat import Chat
from realtime_chat.domain.events.chat_created import ChatCreated

_clock: Clock = SystemClock()


async def get_or_create_chat(
    user_id: int,
    provider_id: int,
    uow: UnitOfWork,
    *,
    service_request_id: int | None = None,
    clock: Clock = _clock,
) -> tuple[Chat, bool]:
    """Return the chat between a customer and a provider, creating it on first use.

    A service request gets its own dedicated chat; without one the most
    recent plain chat between the two parties is reused.

    Returns (chat, created) where created=True if a new chat was made.
    """
    if user_id == provider_id:
        raise ValidationError("Cannot start a chat with yourself")

    if service_request_id is not None:
        existing = await uow.chats.get_by_service_request(service_request_id)
    else:
        existing = await uow.chats.get_between(user_id, provider_id)
    if existing is not None:
        if (existing.user_id, existing.provider_id) != (user_id, provider_id):
            raise ConflictError("Service request already has a chat with other participants")
        return existing, False

    chat = Chat(
        chat_id=uuid.uuid4(),
        user_id=user_id,
        provider_id=provider_id,
        service_request_id=service_request_id,
        created_at=clock.now(),
    )
    chat = await uow.chats_w.create(chat)

    await uow.outbox.add(
        ChatCreated(
            chat_id=chat.chat_id,
            user_id=user_id,
            provider_id=provider_id,
            service_request_id=service_request_id,
        )
    )
    await uow.commit()
    return chat, True


async def list_chats(
    identity: Identity,
    limit: int,
    uow: UnitOfWork,
) -> list[Chat]:
    """Chats where the caller is the customer, plus the provider side for providers."""
    chats = await uow.chats.list_for_user(identity.user_id, limit=limit)
    if identity.is_provider:
        seen = {c.chat_id for c in chats}
        for chat in await uow.chats.list_for_provider(identity.user_id, limit=limit):
            if chat.chat_id not in seen:
                chats.append(chat)
    return chats


async def get_chat(
    chat_id: uuid.UUID,
    identity: Identity,
    uow: UnitOfWork,
) -> Chat:
    chat = await uow.chats.get_by_id(chat_id)
    return assert_chat_access(identity, chat)
