from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from realtime_chat.application.exceptions import AppError, NotJoinedError, PersistenceError
from realtime_chat.application.ports.storage import ChatStorage
from realtime_chat.infrastructure.ws.connection import Connection
from realtime_chat.infrastructure.ws.locks import KeyedLock
from realtime_chat.infrastructure.ws.membership import ChatMembershipStore
from realtime_chat.infrastructure.ws.protocol import MessagesRead, ReadData

logger = logging.getLogger(__name__)


class ReadReceiptTracker:
    """Chat-wide read flags per role.

    Marking read is serialized per chat and idempotent: a call that flips
    nothing broadcasts nothing.
    """

    def __init__(
        self,
        storage: ChatStorage,
        membership: ChatMembershipStore,
        *,
        timeout: float = 5.0,
    ) -> None:
        self._storage = storage
        self._membership = membership
        self._timeout = timeout
        self._locks = KeyedLock()

    async def mark_read(self, connection: Connection, chat_id: UUID) -> int:
        if not self._membership.is_joined(connection, chat_id):
            raise NotJoinedError("Join the chat before marking it read", chat_id=chat_id)
        reader = connection.acting_as(chat_id)

        async with self._locks.hold(chat_id):
            try:
                changed = await asyncio.wait_for(
                    self._storage.mark_chat_read(chat_id, reader),
                    timeout=self._timeout,
                )
            except AppError:
                raise
            except Exception as exc:
                logger.exception("Mark read failed for chat %s", chat_id)
                raise PersistenceError(
                    "Read state could not be saved", chat_id=chat_id
                ) from exc
            if changed:
                await self._membership.broadcast(
                    chat_id,
                    self._frame(chat_id, reader.is_provider, reader.user_id),
                    exclude=connection,
                )
        logger.debug("%r marked %d message(s) read in chat %s", connection, changed, chat_id)
        return changed

    async def deliver(self, chat_id: UUID, *, is_provider: bool, reader_id: int) -> int:
        """Fan out a read mark made elsewhere (REST or another instance)."""
        async with self._locks.hold(chat_id):
            return await self._membership.broadcast(
                chat_id, self._frame(chat_id, is_provider, reader_id)
            )

    @staticmethod
    def _frame(chat_id: UUID, is_provider: bool, reader_id: int) -> MessagesRead:
        return MessagesRead(
            data=ReadData(chat_id=chat_id, is_provider=is_provider, read_by=reader_id)
        )
