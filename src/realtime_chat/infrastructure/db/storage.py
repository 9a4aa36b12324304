"""``ChatStorage`` backed by short-lived SQLAlchemy sessions."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import NotFoundError
from realtime_chat.domain.entities.chat import Chat
from realtime_chat.domain.entities.message import Message
from realtime_chat.infrastructure.db.uow import SqlAlchemyUoW
from realtime_chat.services import message_service, read_state_service


class SqlAlchemyChatStorage:
    """One session per call; ``origin`` tags outbox events written by this instance."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        origin: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._origin = origin

    async def get_chat_participants(self, chat_id: UUID) -> Chat:
        async with self._session_factory() as session:
            chat = await SqlAlchemyUoW(session).chats.get_by_id(chat_id)
        if chat is None:
            raise NotFoundError("Chat not found", chat_id=chat_id)
        return chat

    async def persist_message(self, chat_id: UUID, sender: Identity, content: str) -> Message:
        async with self._session_factory() as session:
            async with SqlAlchemyUoW(session) as uow:
                return await message_service.persist_message(
                    chat_id, sender, content, uow, origin=self._origin,
                )

    async def mark_chat_read(self, chat_id: UUID, reader: Identity) -> int:
        async with self._session_factory() as session:
            async with SqlAlchemyUoW(session) as uow:
                return await read_state_service.mark_chat_read(
                    chat_id, reader, uow, origin=self._origin,
                )
