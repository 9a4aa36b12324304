"""Redis Pub/Sub fan-out between app instances.

The outbox worker publishes chat events, every app instance subscribes and
hands them to its ``ChatHub.relay``.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis

from realtime_chat.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)

RelayCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        receivers = await self._redis.publish(channel, serialize_event(event_type, payload))
        if not receivers:
            logger.debug("No app instance subscribed to %s for %s", channel, event_type)


class RedisPubSubSubscriber:
    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: RelayCallback,
        *,
        retry_delay: float = 5.0,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._retry_delay = retry_delay
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"relay-{self._channel}")
        logger.info("Relaying chat events from channel=%s", self._channel)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Relay from channel=%s stopped", self._channel)

    async def _run(self) -> None:
        # Reconnects forever; a dropped Redis connection must not end the relay.
        while True:
            try:
                await self._listen()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Relay subscription lost, retrying in %.1fs", self._retry_delay)
                await asyncio.sleep(self._retry_delay)

    async def _listen(self) -> None:
        async with self._redis.pubsub(ignore_subscribe_messages=True) as pubsub:
            await pubsub.subscribe(self._channel)
            async for message in pubsub.listen():
                await self._handle(message["data"])

    async def _handle(self, raw: str | bytes) -> None:
        try:
            event_type, data = deserialize_event(raw)
        except ValueError:
            logger.warning("Dropping undecodable relay frame on %s", self._channel)
            return
        try:
            await self._callback(event_type, data)
        except Exception:
            logger.exception("Relay of %s failed", event_type)
