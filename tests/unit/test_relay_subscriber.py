from __future__ import annotations

import pytest

from realtime_chat.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber
from realtime_chat.infrastructure.bus.serializer import serialize_event


def _subscriber(received: list, *, fail: bool = False) -> RedisPubSubSubscriber:
    async def callback(event_type: str, data: dict) -> None:
        if fail:
            raise RuntimeError("hub exploded")
        received.append((event_type, data))

    return RedisPubSubSubscriber(None, "chat.fanout", callback)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_decoded_events_reach_the_callback():
    received: list = []
    sub = _subscriber(received)

    await sub._handle(serialize_event("chat.messages_read", {"chat_id": "c1"}))

    assert received == [("chat.messages_read", {"chat_id": "c1"})]


@pytest.mark.asyncio
async def test_undecodable_frames_are_dropped():
    received: list = []
    sub = _subscriber(received)

    await sub._handle("not json")
    await sub._handle('{"data": {}}')

    assert received == []


@pytest.mark.asyncio
async def test_callback_failure_does_not_stop_the_relay():
    sub = _subscriber([], fail=True)

    await sub._handle(serialize_event("chat.message_created", {}))

    assert sub.running is False
