from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Protocol
from uuid import UUID

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.ports.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class OutboundFrame(Protocol):
    event: str

    def to_json(self) -> str: ...


class Connection:
    """One live WebSocket session.

    Delivery only enqueues the encoded frame; a writer task drains the queue
    into the socket. After :meth:`close` every send is dropped, and a full
    queue closes the connection (slow consumer).
    """

    def __init__(
        self,
        identity: Identity,
        *,
        handle: str | None = None,
        queue_size: int = 256,
        clock: Clock | None = None,
    ) -> None:
        self.identity = identity
        self.handle = handle or uuid.uuid4().hex
        # Chat id -> identity with the role held in that chat.
        self.joined: dict[UUID, Identity] = {}
        self._clock = clock or SystemClock()
        self.last_activity = self._clock.monotonic()
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    def __repr__(self) -> str:
        return f"<Connection {self.handle} user={self.identity.user_id}>"

    @property
    def user_id(self) -> int:
        return self.identity.user_id

    @property
    def closed(self) -> bool:
        return self._closed

    def acting_as(self, chat_id: UUID) -> Identity:
        return self.joined.get(chat_id, self.identity)

    def touch(self) -> None:
        self.last_activity = self._clock.monotonic()

    def idle_for(self) -> float:
        return self._clock.monotonic() - self.last_activity

    def send(self, frame: OutboundFrame) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(frame.to_json())
        except asyncio.QueueFull:
            logger.warning("Send queue full for %r, dropping connection", self)
            self.close()
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Undelivered frames are discarded; the sentinel wakes the writer.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    async def next_frame(self) -> str | None:
        """Next encoded frame, or None once the connection is closed."""
        if self._closed and self._queue.empty():
            return None
        frame = await self._queue.get()
        if frame is None:
            return None
        return frame
