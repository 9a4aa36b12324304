from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from realtime_chat.application.exceptions import NotJoinedError
from realtime_chat.infrastructure.ws.connection import Connection
from realtime_chat.infrastructure.ws.membership import ChatMembershipStore
from realtime_chat.infrastructure.ws.protocol import TypingData, TypingStarted, TypingStopped

logger = logging.getLogger(__name__)


class TypingBroadcaster:
    """Ephemeral typing state per (chat, connection) with a fixed expiry.

    ``typing:started`` goes out on the rising edge only; repeated starts just
    re-arm the timer. ``typing:stopped`` goes out once on the falling edge,
    whether caused by an explicit stop, the timer, a sent message, leaving
    the chat or disconnecting.
    """

    def __init__(self, membership: ChatMembershipStore, *, timeout: float = 3.0) -> None:
        self._membership = membership
        self._timeout = timeout
        self._timers: dict[tuple[UUID, str], asyncio.Task[None]] = {}

    async def start(self, connection: Connection, chat_id: UUID) -> None:
        if not self._membership.is_joined(connection, chat_id):
            raise NotJoinedError("Join the chat before typing", chat_id=chat_id)

        key = (chat_id, connection.handle)
        previous = self._timers.pop(key, None)
        if previous is not None:
            previous.cancel()
        self._timers[key] = asyncio.create_task(
            self._expire(connection, chat_id),
            name=f"typing-{chat_id}-{connection.handle}",
        )
        if previous is None:
            await self._membership.broadcast(
                chat_id,
                TypingStarted(data=self._data(connection, chat_id)),
                exclude=connection,
            )

    async def stop(self, connection: Connection, chat_id: UUID) -> bool:
        timer = self._timers.pop((chat_id, connection.handle), None)
        if timer is None:
            return False
        if timer is not asyncio.current_task():
            timer.cancel()
        await self._membership.broadcast(
            chat_id,
            TypingStopped(data=self._data(connection, chat_id)),
            exclude=connection,
        )
        return True

    async def release(self, connection: Connection) -> None:
        """Stop every indicator owned by *connection* (used on disconnect)."""
        for chat_id, handle in list(self._timers):
            if handle == connection.handle:
                await self.stop(connection, chat_id)

    def is_typing(self, connection: Connection, chat_id: UUID) -> bool:
        return (chat_id, connection.handle) in self._timers

    async def _expire(self, connection: Connection, chat_id: UUID) -> None:
        await asyncio.sleep(self._timeout)
        logger.debug("Typing expired for %r in chat %s", connection, chat_id)
        await self.stop(connection, chat_id)

    @staticmethod
    def _data(connection: Connection, chat_id: UUID) -> TypingData:
        return TypingData(
            chat_id=chat_id,
            user_id=connection.user_id,
            is_provider=connection.acting_as(chat_id).is_provider,
        )
