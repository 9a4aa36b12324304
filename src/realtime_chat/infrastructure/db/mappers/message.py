from __future__ import annotations

from realtime_chat.domain.entities.message import Message
from realtime_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        message_id=model.message_id,
        chat_id=model.chat_id,
        sender_id=model.sender_id,
        is_provider=model.is_provider,
        content=model.content,
        timestamp=model.created_at,
        read_by_user=model.read_by_user,
        read_by_provider=model.read_by_provider,
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        message_id=entity.message_id,
        chat_id=entity.chat_id,
        sender_id=entity.sender_id,
        is_provider=entity.is_provider,
        content=entity.content,
        created_at=entity.timestamp,
        read_by_user=entity.read_by_user,
        read_by_provider=entity.read_by_provider,
    )
