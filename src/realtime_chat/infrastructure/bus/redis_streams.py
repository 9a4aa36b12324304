"""Redis Streams consumer-group reader for inbound domain events."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

OnStreamEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


async def ensure_group(redis: aioredis.Redis, stream: str, group: str) -> bool:
    """Create *group* on *stream* (and the stream itself); False if it already existed."""
    try:
        await redis.xgroup_create(stream, group, id="$", mkstream=True)
    except aioredis.ResponseError as e:
        if "BUSYGROUP" in str(e):
            logger.debug("Consumer group %s already exists on %s", group, stream)
            return False
        raise
    logger.info("Created consumer group %s on %s", group, stream)
    return True


class RedisStreamConsumer:
    """XREADGROUP-based consumer for a single stream + consumer group.

    On start it first claims entries left pending by consumers that died
    before acknowledging them, then reads new entries. An entry is acked
    only after the callback returns.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        stream: str,
        group: str,
        consumer: str,
        callback: OnStreamEventCallback,
        *,
        batch_size: int = 10,
        block_ms: int = 5000,
        claim_idle_ms: int = 60_000,
        retry_delay: float = 5.0,
    ) -> None:
        self._redis = redis
        self._stream = stream
        self._group = group
        self._consumer = consumer
        self._callback = callback
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._claim_idle_ms = claim_idle_ms
        self._retry_delay = retry_delay
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        await ensure_group(self._redis, self._stream, self._group)
        self._task = asyncio.create_task(self._consume(), name="redis-stream-consumer")
        logger.info("Stream consumer started: stream=%s group=%s", self._stream, self._group)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Stream consumer stopped")

    async def _consume(self) -> None:
        await self._reclaim()
        while True:
            try:
                entries = await self._redis.xreadgroup(
                    groupname=self._group,
                    consumername=self._consumer,
                    streams={self._stream: ">"},
                    count=self._batch_size,
                    block=self._block_ms,
                )
                for _stream_name, messages in entries or ():
                    await self._process(messages)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Stream consumer error, retrying in %.0fs", self._retry_delay)
                await asyncio.sleep(self._retry_delay)

    async def _reclaim(self) -> None:
        start_id = "0-0"
        try:
            while True:
                start_id, messages, *_ = await self._redis.xautoclaim(
                    self._stream,
                    self._group,
                    self._consumer,
                    min_idle_time=self._claim_idle_ms,
                    start_id=start_id,
                    count=self._batch_size,
                )
                if messages:
                    logger.info("Reclaimed %d pending stream entries", len(messages))
                    await self._process(messages)
                if not messages or start_id in ("0-0", b"0-0"):
                    return
        except aioredis.ResponseError:
            logger.warning("Could not reclaim pending entries on %s", self._stream, exc_info=True)

    async def _process(self, messages: list[tuple[str, dict[str, Any]]]) -> None:
        for msg_id, fields in messages:
            # Deleted entries come back with no fields.
            if not fields:
                await self._redis.xack(self._stream, self._group, msg_id)
                continue
            event_type = fields.get("event_type", "unknown")
            try:
                await self._callback(event_type, fields)
            except Exception:
                logger.exception("Error processing stream message %s (%s)", msg_id, event_type)
                continue
            await self._redis.xack(self._stream, self._group, msg_id)
