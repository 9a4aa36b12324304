"""Consumer for service-request lifecycle events via Redis Streams.

Every service request gets its own chat between the requesting customer and
the provider, created when the request is.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

import redis.asyncio as aioredis

from realtime_chat.application.exceptions import ConflictError, ValidationError
from realtime_chat.application.uow import UnitOfWork
from realtime_chat.config import settings
from realtime_chat.infrastructure.bus.redis_streams import RedisStreamConsumer
from realtime_chat.infrastructure.db.session import AsyncSessionLocal
from realtime_chat.infrastructure.db.uow import SqlAlchemyUoW
from realtime_chat.services import chat_service

logger = logging.getLogger(__name__)


async def _handle_event(event_type: str, fields: dict[str, Any]) -> None:
    if event_type != "service_request.created":
        logger.debug("Ignoring event: %s", event_type)
        return
    async with AsyncSessionLocal() as session:
        await handle_service_request_created(fields, SqlAlchemyUoW(session))


async def handle_service_request_created(fields: dict[str, Any], uow: UnitOfWork) -> None:
    """Open the dedicated chat for a new service request.

    Stream fields arrive as strings; a redelivered event finds the existing
    chat and changes nothing.
    """
    try:
        request_id = int(fields["service_request_id"])
        user_id = int(fields["user_id"])
        provider_id = int(fields["provider_id"])
    except (KeyError, ValueError):
        logger.warning("Malformed service_request.created event: %r", fields)
        return

    try:
        chat, created = await chat_service.get_or_create_chat(
            user_id, provider_id, uow, service_request_id=request_id,
        )
    except (ConflictError, ValidationError) as exc:
        logger.warning("Service request %d rejected: %s", request_id, exc.detail)
        return
    if created:
        logger.info(
            "Created chat %s for service request %d (user %d, provider %d)",
            chat.chat_id, request_id, user_id, provider_id,
        )
    else:
        logger.debug("Chat %s already exists for service request %d", chat.chat_id, request_id)


async def run_consumer() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    consumer_name = f"consumer-{uuid.uuid4().hex[:8]}"

    consumer = RedisStreamConsumer(
        redis=redis,
        stream=settings.SERVICE_REQUEST_STREAM,
        group=settings.SERVICE_REQUEST_GROUP,
        consumer=consumer_name,
        callback=_handle_event,
    )
    await consumer.start()
    logger.info("Service-request consumer started (%s)", consumer_name)

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await consumer.stop()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_consumer())


if __name__ == "__main__":
    main()
