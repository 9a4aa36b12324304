from __future__ import annotations

from realtime_chat.domain.entities.chat import Chat
from realtime_chat.infrastructure.db.models.chat import ChatModel


def model_to_entity(model: ChatModel) -> Chat:
    return Chat(
        chat_id=model.chat_id,
        user_id=model.user_id,
        provider_id=model.provider_id,
        service_request_id=model.service_request_id,
        created_at=model.created_at,
        last_message=model.last_message,
        last_message_at=model.last_message_at,
        unread_count_user=model.unread_count_user,
        unread_count_provider=model.unread_count_provider,
    )


def entity_to_model(entity: Chat) -> ChatModel:
    return ChatModel(
        chat_id=entity.chat_id,
        user_id=entity.user_id,
        provider_id=entity.provider_id,
        service_request_id=entity.service_request_id,
        created_at=entity.created_at,
        last_message=entity.last_message,
        last_message_at=entity.last_message_at,
        unread_count_user=entity.unread_count_user,
        unread_count_provider=entity.unread_count_provider,
    )
