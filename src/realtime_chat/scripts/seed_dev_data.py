"""Seed development data: one customer/provider chat with a short history."""
from __future__ import annotations

import asyncio
import logging

from realtime_chat.application.dto.identity import Identity
from realtime_chat.infrastructure.db.session import AsyncSessionLocal, create_tables
from realtime_chat.infrastructure.db.uow import SqlAlchemyUoW
from realtime_chat.services import chat_service, message_service

logger = logging.getLogger(__name__)

CUSTOMER = Identity(user_id=42, is_provider=False)
PROVIDER = Identity(user_id=7, is_provider=True)

MESSAGES = [
    (CUSTOMER, "Hi! Are you available on Saturday morning?"),
    (PROVIDER, "Hello, yes. What time works for you?"),
    (CUSTOMER, "Around 10am would be great."),
    (PROVIDER, "Booked. See you then."),
]


async def seed() -> None:
    await create_tables()
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        chat, created = await chat_service.get_or_create_chat(
            CUSTOMER.user_id, PROVIDER.user_id, uow,
        )
        if not created:
            logger.info("Chat %s already seeded", chat.chat_id)
            return

        for sender, text in MESSAGES:
            await message_service.persist_message(chat.chat_id, sender, text, uow)

        logger.info("Seeded chat %s with %d messages", chat.chat_id, len(MESSAGES))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
