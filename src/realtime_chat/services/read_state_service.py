from __future__ import annotations

import uuid

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.policies.permissions import acting_identity
from realtime_chat.application.uow import UnitOfWork
from realtime_chat.domain.events.messages_read import MessagesRead


async def mark_chat_read(
    chat_id: uuid.UUID,
    reader: Identity,
    uow: UnitOfWork,
    *,
    origin: str | None = None,
) -> int:
    """Mark every message of the chat read for the reader's role.

    Flags only ever go from false to true, so repeating the call changes
    nothing and queues no event.
    """
    changed = await uow.messages_w.mark_read(chat_id, is_provider=reader.is_provider)
    await uow.chats_w.reset_unread(chat_id, is_provider=reader.is_provider)
    if changed:
        await uow.outbox.add(
            MessagesRead(
                chat_id=chat_id,
                reader_id=reader.user_id,
                is_provider=reader.is_provider,
                origin=origin,
            )
        )
    await uow.commit()
    return changed


async def mark_read(
    chat_id: uuid.UUID,
    identity: Identity,
    uow: UnitOfWork,
) -> int:
    reader = acting_identity(identity, await uow.chats.get_by_id(chat_id))
    return await mark_chat_read(chat_id, reader, uow)
