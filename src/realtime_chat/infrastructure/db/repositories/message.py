from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from realtime_chat.domain.entities.message import Message
from realtime_chat.infrastructure.db.mappers import message as mapper
from realtime_chat.infrastructure.db.models.message import MessageModel


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        chat_id: UUID,
        *,
        before: datetime | None = None,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.chat_id == chat_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.message_id.desc())
            .limit(limit)
        )
        if before is not None:
            stmt = stmt.where(MessageModel.created_at < before)
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, message: Message) -> Message:
        model = mapper.entity_to_model(message)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_read(self, chat_id: UUID, *, is_provider: bool) -> int:
        flag = MessageModel.read_by_provider if is_provider else MessageModel.read_by_user
        stmt = (
            update(MessageModel)
            .where(MessageModel.chat_id == chat_id, flag.is_(False))
            .values({flag: True})
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
