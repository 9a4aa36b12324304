from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from realtime_chat.domain.entities.chat import Chat
from realtime_chat.infrastructure.db.mappers import chat as mapper
from realtime_chat.infrastructure.db.models.chat import ChatModel


class ChatReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, chat_id: UUID) -> Chat | None:
        result = await self._session.get(ChatModel, chat_id)
        return mapper.model_to_entity(result) if result else None

    async def get_by_service_request(self, service_request_id: int) -> Chat | None:
        stmt = select(ChatModel).where(
            ChatModel.service_request_id == service_request_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def get_between(self, user_id: int, provider_id: int) -> Chat | None:
        stmt = (
            select(ChatModel)
            .where(
                ChatModel.user_id == user_id,
                ChatModel.provider_id == provider_id,
                ChatModel.service_request_id.is_(None),
            )
            .order_by(ChatModel.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Chat]:
        stmt = (
            select(ChatModel)
            .where(ChatModel.user_id == user_id)
            .order_by(ChatModel.last_message_at.desc().nullslast(), ChatModel.chat_id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_for_provider(self, provider_id: int, *, limit: int = 50) -> list[Chat]:
        stmt = (
            select(ChatModel)
            .where(ChatModel.provider_id == provider_id)
            .order_by(ChatModel.last_message_at.desc().nullslast(), ChatModel.chat_id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ChatWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, chat: Chat) -> Chat:
        model = mapper.entity_to_model(chat)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def record_message(
        self,
        chat_id: UUID,
        content: str,
        ts: datetime,
        *,
        from_provider: bool,
    ) -> None:
        # The counter of the side that did not send goes up.
        counter = (
            {"unread_count_user": ChatModel.unread_count_user + 1}
            if from_provider
            else {"unread_count_provider": ChatModel.unread_count_provider + 1}
        )
        stmt = (
            update(ChatModel)
            .where(ChatModel.chat_id == chat_id)
            .values(last_message=content, last_message_at=ts, **counter)
        )
        await self._session.execute(stmt)

    async def reset_unread(self, chat_id: UUID, *, is_provider: bool) -> None:
        column = "unread_count_provider" if is_provider else "unread_count_user"
        stmt = (
            update(ChatModel)
            .where(ChatModel.chat_id == chat_id)
            .values({column: 0})
        )
        await self._session.execute(stmt)
