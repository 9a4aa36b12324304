from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from realtime_chat.application.exceptions import NotJoinedError
from realtime_chat.infrastructure.ws.typing_indicator import TypingBroadcaster
from tests.conftest import drain, event_names


@pytest_asyncio.fixture
async def joined(hub, chat, customer, provider):
    cust = await hub.connect(customer)
    prov = await hub.connect(provider)
    await hub.membership.join(cust, chat.chat_id)
    await hub.membership.join(prov, chat.chat_id)
    drain(cust)
    drain(prov)
    return cust, prov


@pytest.mark.asyncio
async def test_started_only_on_rising_edge(hub, chat, joined):
    cust, prov = joined

    await hub.typing.start(cust, chat.chat_id)
    await hub.typing.start(cust, chat.chat_id)

    frames = drain(prov)
    assert frames == [
        {
            "event": "typing:started",
            "data": {"chatId": str(chat.chat_id), "userId": 42, "isProvider": False},
        }
    ]
    assert drain(cust) == []


@pytest.mark.asyncio
async def test_expiry_yields_exactly_one_stop(hub, chat, joined):
    cust, prov = joined

    await hub.typing.start(cust, chat.chat_id)
    await asyncio.sleep(0.2)
    await hub.typing.stop(cust, chat.chat_id)

    assert event_names(drain(prov)) == ["typing:started", "typing:stopped"]
    assert not hub.typing.is_typing(cust, chat.chat_id)


@pytest.mark.asyncio
async def test_restart_rearms_timer(hub, chat, joined):
    cust, prov = joined
    typing = TypingBroadcaster(hub.membership, timeout=0.2)

    await typing.start(cust, chat.chat_id)
    await asyncio.sleep(0.15)
    await typing.start(cust, chat.chat_id)
    await asyncio.sleep(0.15)

    assert typing.is_typing(cust, chat.chat_id)
    assert event_names(drain(prov)) == ["typing:started"]
    await typing.stop(cust, chat.chat_id)


@pytest.mark.asyncio
async def test_explicit_stop_without_start_is_silent(hub, chat, joined):
    cust, prov = joined

    assert await hub.typing.stop(cust, chat.chat_id) is False
    assert drain(prov) == []


@pytest.mark.asyncio
async def test_typing_requires_join(hub, chat, stranger):
    conn = await hub.connect(stranger)

    with pytest.raises(NotJoinedError):
        await hub.typing.start(conn, chat.chat_id)


@pytest.mark.asyncio
async def test_disconnect_closes_active_typing(hub, chat, joined):
    cust, prov = joined
    await hub.typing.start(cust, chat.chat_id)
    drain(prov)

    await hub.disconnect(cust)

    assert event_names(drain(prov)) == ["typing:stopped", "user:offline"]
    await asyncio.sleep(0.1)
    assert drain(prov) == []
