"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import pytest

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import NotFoundError
from realtime_chat.application.repositories.outbox import OutboxEvent, OutboxRecord
from realtime_chat.domain.entities.chat import Chat
from realtime_chat.domain.entities.message import Message
from realtime_chat.infrastructure.ws.connection import Connection
from realtime_chat.infrastructure.ws.hub import ChatHub
from realtime_chat.services import message_service, read_state_service

CUSTOMER_ID = 42
PROVIDER_ID = 7


@pytest.fixture
def customer() -> Identity:
    return Identity(user_id=CUSTOMER_ID, is_provider=False)


@pytest.fixture
def provider() -> Identity:
    return Identity(user_id=PROVIDER_ID, is_provider=True)


@pytest.fixture
def stranger() -> Identity:
    return Identity(user_id=99, is_provider=False)


def make_chat(
    *,
    chat_id: UUID | None = None,
    user_id: int = CUSTOMER_ID,
    provider_id: int = PROVIDER_ID,
    service_request_id: int | None = None,
) -> Chat:
    return Chat(
        chat_id=chat_id or uuid.uuid4(),
        user_id=user_id,
        provider_id=provider_id,
        service_request_id=service_request_id,
        created_at=datetime.now(timezone.utc),
    )


def make_message(
    *,
    chat_id: UUID | None = None,
    sender_id: int = CUSTOMER_ID,
    is_provider: bool = False,
    content: str = "hello",
    timestamp: datetime | None = None,
) -> Message:
    return Message(
        message_id=uuid.uuid4(),
        chat_id=chat_id or uuid.uuid4(),
        sender_id=sender_id,
        is_provider=is_provider,
        content=content,
        timestamp=timestamp or datetime.now(timezone.utc),
        read_by_user=not is_provider,
        read_by_provider=is_provider,
    )


def make_history(chat_id: UUID, count: int) -> list[Message]:
    """*count* customer messages one second apart, oldest first."""
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        make_message(chat_id=chat_id, content=f"m{i}", timestamp=start + timedelta(seconds=i))
        for i in range(count)
    ]


@dataclass
class FakeChatReader:
    _store: dict[UUID, Chat] = field(default_factory=dict)

    async def get_by_id(self, chat_id: UUID) -> Chat | None:
        return self._store.get(chat_id)

    async def get_by_service_request(self, service_request_id: int) -> Chat | None:
        for c in self._store.values():
            if c.service_request_id == service_request_id:
                return c
        return None

    async def get_between(self, user_id: int, provider_id: int) -> Chat | None:
        for c in self._store.values():
            if c.user_id == user_id and c.provider_id == provider_id and c.service_request_id is None:
                return c
        return None

    async def list_for_user(self, user_id: int, *, limit: int = 50) -> list[Chat]:
        return [c for c in self._store.values() if c.user_id == user_id][:limit]

    async def list_for_provider(self, provider_id: int, *, limit: int = 50) -> list[Chat]:
        return [c for c in self._store.values() if c.provider_id == provider_id][:limit]


@dataclass
class FakeChatWriter:
    _reader: FakeChatReader

    async def create(self, chat: Chat) -> Chat:
        self._reader._store[chat.chat_id] = chat
        return chat

    async def record_message(
        self, chat_id: UUID, content: str, ts: datetime, *, from_provider: bool
    ) -> None:
        chat = self._reader._store[chat_id]
        if from_provider:
            chat = replace(chat, unread_count_user=chat.unread_count_user + 1)
        else:
            chat = replace(chat, unread_count_provider=chat.unread_count_provider + 1)
        self._reader._store[chat_id] = replace(chat, last_message=content, last_message_at=ts)

    async def reset_unread(self, chat_id: UUID, *, is_provider: bool) -> None:
        chat = self._reader._store[chat_id]
        counter = "unread_count_provider" if is_provider else "unread_count_user"
        self._reader._store[chat_id] = replace(chat, **{counter: 0})


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def list_messages(
        self, chat_id: UUID, *, before: datetime | None = None, limit: int = 50
    ) -> list[Message]:
        items = [
            m for m in self._messages
            if m.chat_id == chat_id and (before is None or m.timestamp < before)
        ]
        items.sort(key=lambda m: m.timestamp, reverse=True)
        return items[:limit]


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def create(self, message: Message) -> Message:
        self._reader._messages.append(message)
        return message

    async def mark_read(self, chat_id: UUID, *, is_provider: bool) -> int:
        flag = "read_by_provider" if is_provider else "read_by_user"
        changed = 0
        for i, m in enumerate(self._reader._messages):
            if m.chat_id == chat_id and not getattr(m, flag):
                self._reader._messages[i] = replace(m, **{flag: True})
                changed += 1
        return changed


@dataclass
class FakeOutboxWriter:
    _records: list[dict[str, Any]] = field(default_factory=list)
    _pending: list[OutboxRecord] = field(default_factory=list)
    sent: list[int] = field(default_factory=list)
    failed: list[tuple[int, datetime, str | None]] = field(default_factory=list)
    dead: list[int] = field(default_factory=list)

    async def add(self, event: OutboxEvent) -> None:
        self._records.append({"event_type": event.event_type, "payload": event.to_payload()})

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        batch, self._pending = self._pending[:batch_size], self._pending[batch_size:]
        return batch

    async def mark_sent(self, ids: list[int]) -> None:
        self.sent.extend(ids)

    async def mark_failed(
        self, record_id: int, next_retry_at: datetime, error: str | None = None
    ) -> None:
        self.failed.append((record_id, next_retry_at, error))

    async def mark_dead(self, record_id: int) -> None:
        self.dead.append(record_id)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    chats: FakeChatReader = field(default_factory=FakeChatReader)
    chats_w: FakeChatWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    outbox: FakeOutboxWriter = field(default_factory=FakeOutboxWriter)
    _committed: bool = False

    def __post_init__(self) -> None:
        if self.chats_w is None:
            self.chats_w = FakeChatWriter(self.chats)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        pass


class FakeChatStorage:
    """``ChatStorage`` over a FakeUoW, running the real service functions.

    ``fail_with`` makes the next persists raise; ``persist_delay`` stalls them.
    """

    def __init__(self, uow: FakeUoW | None = None) -> None:
        self.uow = uow or FakeUoW()
        self.fail_with: Exception | None = None
        self.persist_delay = 0.0
        self.lookups = 0

    def add_chat(self, chat: Chat) -> Chat:
        self.uow.chats._store[chat.chat_id] = chat
        return chat

    async def get_chat_participants(self, chat_id: UUID) -> Chat:
        self.lookups += 1
        chat = await self.uow.chats.get_by_id(chat_id)
        if chat is None:
            raise NotFoundError("Chat not found", chat_id=chat_id)
        return chat

    async def persist_message(self, chat_id: UUID, sender: Identity, content: str) -> Message:
        if self.persist_delay:
            await asyncio.sleep(self.persist_delay)
        if self.fail_with is not None:
            raise self.fail_with
        return await message_service.persist_message(chat_id, sender, content, self.uow)

    async def mark_chat_read(self, chat_id: UUID, reader: Identity) -> int:
        return await read_state_service.mark_chat_read(chat_id, reader, self.uow)


@pytest.fixture
def storage() -> FakeChatStorage:
    return FakeChatStorage()


@pytest.fixture
def chat(storage: FakeChatStorage) -> Chat:
    return storage.add_chat(make_chat())


@pytest.fixture
def hub(storage: FakeChatStorage) -> ChatHub:
    return ChatHub(
        storage,
        instance_id="test-instance",
        typing_timeout=0.05,
        persist_timeout=0.2,
        lookup_timeout=0.2,
        mark_read_on_join=False,
    )


def drain(connection: Connection) -> list[dict[str, Any]]:
    """Pop every queued outbound frame of *connection* as decoded JSON."""
    frames: list[dict[str, Any]] = []
    queue = connection._queue
    while not queue.empty():
        raw = queue.get_nowait()
        if raw is not None:
            frames.append(json.loads(raw))
    return frames


def event_names(frames: list[dict[str, Any]]) -> list[str]:
    return [f["event"] for f in frames]
