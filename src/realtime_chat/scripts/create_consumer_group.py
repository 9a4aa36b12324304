"""One-time script: create the Redis Streams consumer group for service-request events."""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from realtime_chat.config import settings
from realtime_chat.infrastructure.bus.redis_streams import ensure_group

logger = logging.getLogger(__name__)


async def create_group() -> None:
    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        created = await ensure_group(
            r, settings.SERVICE_REQUEST_STREAM, settings.SERVICE_REQUEST_GROUP,
        )
        if not created:
            logger.info("Consumer group '%s' already exists", settings.SERVICE_REQUEST_GROUP)
    finally:
        await r.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_group())


if __name__ == "__main__":
    main()
