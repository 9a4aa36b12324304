from __future__ import annotations

import asyncio
import uuid

import pytest

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import ForbiddenError, NotFoundError, PersistenceError
from realtime_chat.infrastructure.ws.connection import Connection
from realtime_chat.infrastructure.ws.locks import KeyedLock
from realtime_chat.infrastructure.ws.membership import ChatMembershipStore
from realtime_chat.infrastructure.ws.protocol import Pong
from tests.conftest import drain, make_chat


@pytest.mark.asyncio
async def test_join_confirms_and_caches_participants(storage, chat, customer):
    store = ChatMembershipStore(storage)
    phone, laptop = Connection(customer), Connection(customer)

    await store.join(phone, chat.chat_id)
    await store.join(laptop, chat.chat_id)

    assert drain(phone) == [{"event": "chat:joined", "data": {"chatId": str(chat.chat_id)}}]
    assert store.is_joined(phone, chat.chat_id)
    assert store.joined_count(chat.chat_id) == 2
    assert storage.lookups == 1


@pytest.mark.asyncio
async def test_forbidden_join_changes_nothing(storage, chat, stranger):
    store = ChatMembershipStore(storage)
    conn = Connection(stranger)

    with pytest.raises(ForbiddenError) as exc_info:
        await store.join(conn, chat.chat_id)

    assert exc_info.value.chat_id == chat.chat_id
    assert store.joined_count(chat.chat_id) == 0
    assert conn.joined == {}
    assert drain(conn) == []


@pytest.mark.asyncio
async def test_provider_joins_own_customer_side_chat_as_user(storage):
    store = ChatMembershipStore(storage)
    chat = storage.add_chat(make_chat(user_id=7, provider_id=55))
    conn = Connection(Identity(user_id=7, is_provider=True))

    await store.join(conn, chat.chat_id)

    assert store.is_joined(conn, chat.chat_id)
    assert conn.acting_as(chat.chat_id) == Identity(user_id=7, is_provider=False)
    assert conn.acting_as(uuid.uuid4()) is conn.identity


@pytest.mark.asyncio
async def test_customer_credential_cannot_take_the_provider_side(storage, chat):
    store = ChatMembershipStore(storage)
    conn = Connection(Identity(user_id=chat.provider_id, is_provider=False))

    with pytest.raises(ForbiddenError):
        await store.join(conn, chat.chat_id)


@pytest.mark.asyncio
async def test_join_unknown_chat(storage, customer):
    store = ChatMembershipStore(storage)

    with pytest.raises(NotFoundError):
        await store.join(Connection(customer), uuid.uuid4())


@pytest.mark.asyncio
async def test_participant_lookup_is_bounded(storage, chat, customer):
    async def _stall(chat_id):
        await asyncio.sleep(1)

    storage.get_chat_participants = _stall
    store = ChatMembershipStore(storage, lookup_timeout=0.01)

    with pytest.raises(PersistenceError):
        await store.join(Connection(customer), chat.chat_id)


@pytest.mark.asyncio
async def test_closed_connection_is_not_added(storage, chat, customer):
    store = ChatMembershipStore(storage)
    conn = Connection(customer)
    conn.close()

    await store.join(conn, chat.chat_id)

    assert store.joined_count(chat.chat_id) == 0


@pytest.mark.asyncio
async def test_leave_confirms_and_stops_delivery(storage, chat, customer, provider):
    store = ChatMembershipStore(storage)
    cust, prov = Connection(customer), Connection(provider)
    await store.join(cust, chat.chat_id)
    await store.join(prov, chat.chat_id)
    drain(cust)
    drain(prov)

    assert await store.leave(prov, chat.chat_id) is True
    delivered = await store.broadcast(chat.chat_id, Pong())

    assert delivered == 1
    assert drain(prov) == [{"event": "chat:left", "data": {"chatId": str(chat.chat_id)}}]
    assert drain(cust) == [{"event": "pong", "data": {}}]


@pytest.mark.asyncio
async def test_broadcast_excludes_origin(storage, chat, customer, provider):
    store = ChatMembershipStore(storage)
    cust, prov = Connection(customer), Connection(provider)
    await store.join(cust, chat.chat_id)
    await store.join(prov, chat.chat_id)
    drain(cust)
    drain(prov)

    await store.broadcast(chat.chat_id, Pong(), exclude=cust)

    assert drain(cust) == []
    assert len(drain(prov)) == 1


@pytest.mark.asyncio
async def test_peers_come_from_cached_chats(storage, chat, customer):
    store = ChatMembershipStore(storage)
    assert store.peers_of(customer.user_id) == set()

    await store.join(Connection(customer), chat.chat_id)

    assert store.peers_of(customer.user_id) == {chat.provider_id}
    assert store.peers_of(chat.provider_id) == {customer.user_id}


@pytest.mark.asyncio
async def test_keyed_lock_forgets_released_keys():
    locks = KeyedLock()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("chat"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lookup_failure_becomes_persistence_error(storage, chat, customer):
    async def _boom(chat_id):
        raise RuntimeError("db down")

    storage.get_chat_participants = _boom
    store = ChatMembershipStore(storage)
    conn = Connection(customer)

    with pytest.raises(PersistenceError) as exc_info:
        await store.join(conn, chat.chat_id)

    assert exc_info.value.chat_id == chat.chat_id
    assert not store.is_cached(chat.chat_id)
    assert conn.joined == {}


@pytest.mark.asyncio
async def test_leaving_a_chat_never_joined_is_silent(storage, chat, customer):
    store = ChatMembershipStore(storage)
    conn = Connection(customer)

    assert await store.leave(conn, chat.chat_id) is False
    assert drain(conn) == []


@pytest.mark.asyncio
async def test_cache_drops_least_recent_idle_chats(storage, customer):
    store = ChatMembershipStore(storage, cache_size=2)
    first, second, third = (storage.add_chat(make_chat(provider_id=p)) for p in (7, 8, 9))
    conn = Connection(customer)

    await store.join(conn, first.chat_id)
    for chat in (second, third):
        await store.join(conn, chat.chat_id)
        await store.leave(conn, chat.chat_id)

    # The joined chat stays pinned; the older idle one went.
    assert store.is_cached(first.chat_id)
    assert not store.is_cached(second.chat_id)
    assert store.is_cached(third.chat_id)
    assert store.peers_of(customer.user_id) == {7, 9}
    assert store.peers_of(8) == set()

    await store.join(conn, second.chat_id)
    assert storage.lookups == 4
