from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from realtime_chat.application.exceptions import (
    AppError,
    InvalidContentError,
    NotJoinedError,
    PersistenceError,
)
from realtime_chat.application.ports.storage import ChatStorage
from realtime_chat.domain.entities.message import Message
from realtime_chat.infrastructure.ws.connection import Connection
from realtime_chat.infrastructure.ws.locks import KeyedLock
from realtime_chat.infrastructure.ws.membership import ChatMembershipStore
from realtime_chat.infrastructure.ws.protocol import (
    MessagePayload,
    MessageReceived,
    MessageSent,
    SentMessagePayload,
)
from realtime_chat.infrastructure.ws.typing_indicator import TypingBroadcaster
from realtime_chat.services.message_service import validate_content

logger = logging.getLogger(__name__)


class MessagePipeline:
    """Validate, persist and fan out chat messages.

    Persist and delivery for one chat run under a per-chat ordering lock, so
    every joined connection sees messages in the order they were stored.
    """

    def __init__(
        self,
        storage: ChatStorage,
        membership: ChatMembershipStore,
        typing: TypingBroadcaster,
        *,
        persist_timeout: float = 5.0,
        max_length: int | None = None,
    ) -> None:
        self._storage = storage
        self._membership = membership
        self._typing = typing
        self._persist_timeout = persist_timeout
        self._max_length = max_length
        self._ordering = KeyedLock()

    async def send(
        self,
        connection: Connection,
        chat_id: UUID,
        content: str,
        temp_id: str | None = None,
    ) -> Message:
        if not self._membership.is_joined(connection, chat_id):
            raise NotJoinedError(
                "Join the chat before sending messages", chat_id=chat_id, temp_id=temp_id
            )
        try:
            text = validate_content(content, self._max_length)
        except InvalidContentError as exc:
            exc.chat_id, exc.temp_id = chat_id, temp_id
            raise

        async with self._ordering.hold(chat_id):
            message = await self._persist(connection, chat_id, text, temp_id)
            await self._typing.stop(connection, chat_id)
            connection.send(
                MessageSent(
                    data=SentMessagePayload(
                        **MessagePayload.from_entity(message).model_dump(), temp_id=temp_id
                    )
                )
            )
            await self._membership.broadcast(
                chat_id,
                MessageReceived(data=MessagePayload.from_entity(message)),
                exclude=connection,
            )
        logger.debug("Message %s delivered in chat %s", message.message_id, chat_id)
        return message

    async def deliver(self, message: Message) -> int:
        """Fan out a message persisted elsewhere (REST or another instance)."""
        async with self._ordering.hold(message.chat_id):
            return await self._membership.broadcast(
                message.chat_id, MessageReceived(data=MessagePayload.from_entity(message))
            )

    async def _persist(
        self, connection: Connection, chat_id: UUID, text: str, temp_id: str | None
    ) -> Message:
        try:
            return await asyncio.wait_for(
                self._storage.persist_message(chat_id, connection.acting_as(chat_id), text),
                timeout=self._persist_timeout,
            )
        except TimeoutError as exc:
            logger.warning("Persist timed out for chat %s (tempId=%s)", chat_id, temp_id)
            raise PersistenceError(
                "Message could not be saved", chat_id=chat_id, temp_id=temp_id
            ) from exc
        except AppError as exc:
            exc.chat_id, exc.temp_id = chat_id, temp_id
            raise
        except Exception as exc:
            logger.exception("Persist failed for chat %s (tempId=%s)", chat_id, temp_id)
            raise PersistenceError(
                "Message could not be saved", chat_id=chat_id, temp_id=temp_id
            ) from exc
