from __future__ import annotations

import asyncio
import logging

from realtime_chat.application.exceptions import ProtocolError
from realtime_chat.infrastructure.ws.connection import Connection, OutboundFrame
from realtime_chat.infrastructure.ws.membership import ChatMembershipStore
from realtime_chat.infrastructure.ws.protocol import PresenceData, UserOffline, UserOnline
from realtime_chat.infrastructure.ws.typing_indicator import TypingBroadcaster

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Live connections per user and the presence derived from them.

    A user is online while at least one connection is registered. The
    online/offline transition is decided and announced under the registry
    lock, so overlapping connects and disconnects of one user never produce
    duplicate or out-of-order presence events.
    """

    def __init__(self, membership: ChatMembershipStore, typing: TypingBroadcaster) -> None:
        self._membership = membership
        self._typing = typing
        self._lock = asyncio.Lock()
        self._by_handle: dict[str, Connection] = {}
        self._by_user: dict[int, set[Connection]] = {}

    async def register(self, connection: Connection) -> None:
        async with self._lock:
            if connection.handle in self._by_handle:
                raise ProtocolError(f"Connection {connection.handle} is already registered")
            self._by_handle[connection.handle] = connection
            conns = self._by_user.setdefault(connection.user_id, set())
            first = not conns
            conns.add(connection)
            if first:
                logger.info("User %s online", connection.user_id)
                self._notify_peers(
                    connection.user_id,
                    UserOnline(data=PresenceData(user_id=connection.user_id)),
                )
        logger.debug("Registered %r (total=%d)", connection, len(self._by_handle))

    async def unregister(self, connection: Connection) -> bool:
        """Tear down a connection; safe to call more than once."""
        connection.close()
        if connection.handle not in self._by_handle:
            return False

        await self._typing.release(connection)
        await self._membership.leave_all(connection)

        async with self._lock:
            if self._by_handle.pop(connection.handle, None) is None:
                return False
            conns = self._by_user.get(connection.user_id)
            if conns is not None:
                conns.discard(connection)
                if not conns:
                    del self._by_user[connection.user_id]
                    logger.info("User %s offline", connection.user_id)
                    self._notify_peers(
                        connection.user_id,
                        UserOffline(data=PresenceData(user_id=connection.user_id)),
                    )
        logger.debug("Unregistered %r (total=%d)", connection, len(self._by_handle))
        return True

    def is_online(self, user_id: int) -> bool:
        return bool(self._by_user.get(user_id))

    def connections_for(self, user_id: int) -> set[Connection]:
        return set(self._by_user.get(user_id, ()))

    def __len__(self) -> int:
        return len(self._by_handle)

    def _notify_peers(self, user_id: int, frame: OutboundFrame) -> None:
        for peer in self._membership.peers_of(user_id):
            for connection in self._by_user.get(peer, ()):
                connection.send(frame)
