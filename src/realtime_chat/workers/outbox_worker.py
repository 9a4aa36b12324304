"""Outbox worker: polls pending outbox records, publishes via Redis Pub/Sub."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from realtime_chat.application.ports.bus import EventPublisher
from realtime_chat.application.uow import UnitOfWork
from realtime_chat.config import settings
from realtime_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from realtime_chat.infrastructure.db.session import AsyncSessionLocal
from realtime_chat.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def calc_backoff(attempts: int, now: datetime | None = None) -> datetime:
    delay = min(BASE_DELAY_SECONDS * (2 ** attempts), MAX_DELAY_SECONDS)
    return (now or datetime.now(timezone.utc)) + timedelta(seconds=delay)


async def publish_pending(
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    channel: str,
    batch_size: int,
    max_attempts: int,
) -> int:
    """Publish one batch of outbox records; return how many went out."""
    batch = await uow.outbox.fetch_pending(batch_size)
    if not batch:
        return 0

    sent_ids: list[int] = []
    for record in batch:
        if record.attempts >= max_attempts:
            logger.warning(
                "Outbox record %d (%s) exceeded %d attempts, parking it",
                record.id, record.event_type, max_attempts,
            )
            await uow.outbox.mark_dead(record.id)
            continue
        try:
            await publisher.publish(channel, record.event_type, record.payload)
            sent_ids.append(record.id)
        except Exception as exc:
            logger.exception("Failed to publish outbox record %d", record.id)
            await uow.outbox.mark_failed(
                record.id, calc_backoff(record.attempts), error=repr(exc),
            )

    if sent_ids:
        await uow.outbox.mark_sent(sent_ids)

    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis)

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                async with AsyncSessionLocal() as session:
                    await publish_pending(
                        SqlAlchemyUoW(session),
                        publisher,
                        channel=settings.REDIS_PUBSUB_CHANNEL,
                        batch_size=settings.OUTBOX_BATCH_SIZE,
                        max_attempts=settings.OUTBOX_MAX_ATTEMPTS,
                    )
            except Exception:
                logger.exception("Outbox worker loop error")
            await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
