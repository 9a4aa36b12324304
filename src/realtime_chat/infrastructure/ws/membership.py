from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from itertools import islice
from uuid import UUID

from realtime_chat.application.exceptions import AppError, ForbiddenError, PersistenceError
from realtime_chat.application.policies.permissions import role_in
from realtime_chat.application.ports.storage import ChatStorage
from realtime_chat.domain.entities.chat import Chat
from realtime_chat.infrastructure.ws.connection import Connection, OutboundFrame
from realtime_chat.infrastructure.ws.locks import KeyedLock
from realtime_chat.infrastructure.ws.protocol import ChatJoined, ChatLeft, ChatRef

logger = logging.getLogger(__name__)


class ChatMembershipStore:
    """Which connections are joined to which chat.

    Participants are looked up once per chat and cached; they never change
    for the lifetime of a chat. The cache keeps at most ``cache_size`` chats
    nobody is joined to, dropping the least recently used first; joined
    chats always stay. Every mutation of a chat's joined set and every
    fan-out to it runs under that chat's lock.
    """

    def __init__(
        self,
        storage: ChatStorage,
        *,
        lookup_timeout: float = 3.0,
        cache_size: int = 10_000,
    ) -> None:
        self._storage = storage
        self._lookup_timeout = lookup_timeout
        self._cache_size = cache_size
        self._chats: OrderedDict[UUID, Chat] = OrderedDict()
        self._chats_by_user: dict[int, set[UUID]] = {}
        self._joined: dict[UUID, set[Connection]] = {}
        self._locks = KeyedLock()

    async def participants(self, chat_id: UUID) -> Chat:
        chat = self._chats.get(chat_id)
        if chat is not None:
            self._chats.move_to_end(chat_id)
            return chat
        try:
            chat = await asyncio.wait_for(
                self._storage.get_chat_participants(chat_id),
                timeout=self._lookup_timeout,
            )
        except TimeoutError as exc:
            raise PersistenceError("Chat lookup timed out", chat_id=chat_id) from exc
        except AppError as exc:
            exc.chat_id = exc.chat_id or chat_id
            raise
        except Exception as exc:
            logger.exception("Participant lookup failed for chat %s", chat_id)
            raise PersistenceError("Chat could not be loaded", chat_id=chat_id) from exc
        self._remember(chat)
        return chat

    async def join(self, connection: Connection, chat_id: UUID) -> Chat:
        chat = await self.participants(chat_id)
        role = role_in(connection.identity, chat)
        if role is None:
            logger.info("User %s denied join to chat %s", connection.user_id, chat_id)
            raise ForbiddenError("Access denied to this chat", chat_id=chat_id)

        async with self._locks.hold(chat_id):
            # The socket may have gone away while the lookup was in flight.
            if connection.closed:
                return chat
            self._joined.setdefault(chat_id, set()).add(connection)
            connection.joined[chat_id] = connection.identity.acting_as(role)
            connection.send(ChatJoined(data=ChatRef(chat_id=chat_id)))
        logger.debug("%r joined chat %s as %s", connection, chat_id, role)
        return chat

    async def leave(self, connection: Connection, chat_id: UUID, *, notify: bool = True) -> bool:
        """Remove *connection* from the chat; only an actual leave is acknowledged."""
        async with self._locks.hold(chat_id):
            members = self._joined.get(chat_id)
            removed = members is not None and connection in members
            if removed:
                members.discard(connection)
                if not members:
                    del self._joined[chat_id]
            connection.joined.pop(chat_id, None)
            if removed and notify:
                connection.send(ChatLeft(data=ChatRef(chat_id=chat_id)))
        if removed:
            logger.debug("%r left chat %s", connection, chat_id)
            self._evict()
        return removed

    async def leave_all(self, connection: Connection) -> None:
        for chat_id in list(connection.joined):
            await self.leave(connection, chat_id, notify=False)

    def is_joined(self, connection: Connection, chat_id: UUID) -> bool:
        return connection in self._joined.get(chat_id, ())

    def joined_count(self, chat_id: UUID) -> int:
        return len(self._joined.get(chat_id, ()))

    def is_cached(self, chat_id: UUID) -> bool:
        return chat_id in self._chats

    async def broadcast(
        self,
        chat_id: UUID,
        frame: OutboundFrame,
        *,
        exclude: Connection | None = None,
    ) -> int:
        """Deliver to every joined connection except *exclude*; return the count."""
        async with self._locks.hold(chat_id):
            delivered = 0
            for connection in list(self._joined.get(chat_id, ())):
                if connection is exclude:
                    continue
                if connection.send(frame):
                    delivered += 1
            return delivered

    def peers_of(self, user_id: int) -> set[int]:
        """Counterparts of *user_id* in the cached chats they take part in."""
        peers: set[int] = set()
        for chat_id in self._chats_by_user.get(user_id, ()):
            other = self._chats[chat_id].counterpart_of(user_id)
            if other is not None and other != user_id:
                peers.add(other)
        return peers

    def _remember(self, chat: Chat) -> None:
        self._chats[chat.chat_id] = chat
        self._chats.move_to_end(chat.chat_id)
        for user_id in (chat.user_id, chat.provider_id):
            self._chats_by_user.setdefault(user_id, set()).add(chat.chat_id)
        self._evict()

    def _evict(self) -> None:
        excess = len(self._chats) - self._cache_size
        if excess <= 0:
            return
        idle = (chat_id for chat_id in self._chats if chat_id not in self._joined)
        for chat_id in list(islice(idle, excess)):
            chat = self._chats.pop(chat_id)
            for user_id in (chat.user_id, chat.provider_id):
                chats = self._chats_by_user.get(user_id)
                if chats is not None:
                    chats.discard(chat_id)
                    if not chats:
                        del self._chats_by_user[user_id]
