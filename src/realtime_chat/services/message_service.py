from __future__ import annotations

import uuid
from datetime import datetime

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.dto.message import MessagePage
from realtime_chat.application.exceptions import InvalidContentError
from realtime_chat.application.policies.permissions import acting_identity, assert_chat_access
from realtime_chat.application.ports.clock import Clock, SystemClock
from realtime_chat.application.uow import UnitOfWork
from realtime_chat.config import settings
from realtime_chat.domain.entities.message import Message
from realtime_chat.domain.events.message_created import MessageCreated

_clock: Clock = SystemClock()


def validate_content(content: str | None, max_length: int | None = None) -> str:
    """Return the trimmed content or raise ``InvalidContentError``."""
    limit = max_length or settings.MESSAGE_MAX_LENGTH
    text = (content or "").strip()
    if not text:
        raise InvalidContentError("Message cannot be empty")
    if len(text) > limit:
        raise InvalidContentError(f"Message too long (max {limit} characters)")
    return text


async def persist_message(
    chat_id: uuid.UUID,
    sender: Identity,
    content: str,
    uow: UnitOfWork,
    *,
    origin: str | None = None,
    clock: Clock = _clock,
) -> Message:
    """Store an already validated message and queue its fan-out event.

    The sender's own read flag starts true, the other side's false.
    """
    now = clock.now()
    msg = Message(
        message_id=uuid.uuid4(),
        chat_id=chat_id,
        sender_id=sender.user_id,
        is_provider=sender.is_provider,
        content=content,
        timestamp=now,
        read_by_user=not sender.is_provider,
        read_by_provider=sender.is_provider,
    )
    msg = await uow.messages_w.create(msg)
    await uow.chats_w.record_message(
        chat_id, content, now, from_provider=sender.is_provider,
    )
    await uow.outbox.add(MessageCreated(message=msg, origin=origin))
    await uow.commit()
    return msg


async def post_message(
    chat_id: uuid.UUID,
    identity: Identity,
    content: str | None,
    uow: UnitOfWork,
) -> Message:
    """Plain-request fallback for sending; live peers get it through the outbox relay."""
    text = validate_content(content)
    sender = acting_identity(identity, await uow.chats.get_by_id(chat_id))
    return await persist_message(chat_id, sender, text, uow)


async def list_messages(
    chat_id: uuid.UUID,
    identity: Identity,
    limit: int,
    last_timestamp: datetime | None,
    uow: UnitOfWork,
) -> MessagePage:
    chat = await uow.chats.get_by_id(chat_id)
    assert_chat_access(identity, chat)
    items = await uow.messages.list_messages(
        chat_id, before=last_timestamp, limit=limit,
    )
    cursor = items[-1].timestamp if len(items) == limit else None
    return MessagePage(items=items, limit=limit, last_timestamp=cursor)
