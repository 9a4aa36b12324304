"""Local view of one chat as the client renders it."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from uuid import UUID

from realtime_chat.infrastructure.ws.protocol import MessagePayload


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    JOINED = "joined"


@dataclass(frozen=True, slots=True)
class LocalMessage:
    chat_id: UUID
    sender_id: int
    is_provider: bool
    content: str
    timestamp: datetime
    message_id: UUID | None = None
    temp_id: str | None = None
    read_by_user: bool = False
    read_by_provider: bool = False
    sending: bool = False
    failed: bool = False

    @classmethod
    def from_payload(cls, payload: MessagePayload, temp_id: str | None = None) -> LocalMessage:
        return cls(
            chat_id=payload.chat_id,
            sender_id=payload.sender_id,
            is_provider=payload.is_provider,
            content=payload.content,
            timestamp=payload.timestamp,
            message_id=payload.message_id,
            temp_id=temp_id,
            read_by_user=payload.read_by_user,
            read_by_provider=payload.read_by_provider,
        )


def new_temp_id() -> str:
    return f"temp-{uuid.uuid4().hex}"


@dataclass
class ChatTimeline:
    """Messages of the open chat, oldest first.

    Optimistic entries are keyed by ``temp_id`` until the server confirms
    them; confirmed entries are keyed by ``message_id`` and never duplicated.
    """

    chat_id: UUID | None = None
    messages: list[LocalMessage] = field(default_factory=list)

    def reset(self, chat_id: UUID | None, *, keep_pending: bool = False) -> None:
        pending = (
            [m for m in self.messages if m.sending and m.chat_id == chat_id]
            if keep_pending
            else []
        )
        self.chat_id = chat_id
        self.messages = pending

    def add_optimistic(
        self, sender_id: int, is_provider: bool, content: str, temp_id: str | None = None
    ) -> LocalMessage:
        if self.chat_id is None:
            raise RuntimeError("No chat is open")
        entry = LocalMessage(
            chat_id=self.chat_id,
            sender_id=sender_id,
            is_provider=is_provider,
            content=content,
            timestamp=datetime.now(timezone.utc),
            temp_id=temp_id or new_temp_id(),
            read_by_user=not is_provider,
            read_by_provider=is_provider,
            sending=True,
        )
        self.messages.append(entry)
        return entry

    def acknowledge(self, payload: MessagePayload, temp_id: str | None) -> LocalMessage | None:
        """Swap the optimistic entry for the stored message, in place."""
        if payload.chat_id != self.chat_id:
            return None
        confirmed = LocalMessage.from_payload(payload, temp_id)
        if self._index_of_id(payload.message_id) is not None:
            return None
        idx = self._index_of_temp(temp_id) if temp_id else None
        if idx is None:
            self.messages.append(confirmed)
        else:
            self.messages[idx] = confirmed
        return confirmed

    def receive(self, payload: MessagePayload) -> LocalMessage | None:
        if payload.chat_id != self.chat_id or self._index_of_id(payload.message_id) is not None:
            return None
        entry = LocalMessage.from_payload(payload)
        self.messages.append(entry)
        return entry

    def fail(self, temp_id: str) -> bool:
        idx = self._index_of_temp(temp_id)
        if idx is None:
            return False
        self.messages[idx] = replace(self.messages[idx], sending=False, failed=True)
        return True

    def apply_read(self, chat_id: UUID, *, is_provider: bool) -> None:
        """Set the reading role's flag on every message of the chat."""
        if chat_id != self.chat_id:
            return
        flag = "read_by_provider" if is_provider else "read_by_user"
        self.messages = [replace(m, **{flag: True}) for m in self.messages]

    def load_history(self, page: list[MessagePayload]) -> None:
        """Merge a newest-first history page under the live entries."""
        known = {m.message_id for m in self.messages if m.message_id is not None}
        older = [
            LocalMessage.from_payload(p)
            for p in reversed(page)
            if p.chat_id == self.chat_id and p.message_id not in known
        ]
        self.messages = older + self.messages

    @property
    def pending(self) -> list[LocalMessage]:
        return [m for m in self.messages if m.sending]

    def _index_of_temp(self, temp_id: str | None) -> int | None:
        for i, m in enumerate(self.messages):
            if temp_id is not None and m.temp_id == temp_id and m.message_id is None:
                return i
        return None

    def _index_of_id(self, message_id: UUID) -> int | None:
        for i, m in enumerate(self.messages):
            if m.message_id == message_id:
                return i
        return None
