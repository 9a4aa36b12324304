from __future__ import annotations

from realtime_chat.application.dto.identity import Identity
from realtime_chat.application.exceptions import ForbiddenError, NotFoundError
from realtime_chat.domain.entities.chat import Chat
from realtime_chat.domain.value_objects.enums import Role


def role_in(identity: Identity, chat: Chat) -> Role | None:
    """Side of *chat* the identity sits on, or None for outsiders.

    Providers may also open chats as customers, so the role comes from the
    chat row rather than the credential alone.
    """
    if identity.is_provider and chat.provider_id == identity.user_id:
        return Role.PROVIDER
    if chat.user_id == identity.user_id:
        return Role.USER
    return None


def is_participant(identity: Identity, chat: Chat) -> bool:
    return role_in(identity, chat) is not None


def assert_chat_access(identity: Identity, chat: Chat | None) -> Chat:
    """Raise if the chat doesn't exist or the identity is not one of its two parties."""
    if chat is None:
        raise NotFoundError("Chat not found")

    if not is_participant(identity, chat):
        raise ForbiddenError("Access denied to this chat", chat_id=chat.chat_id)

    return chat


def acting_identity(identity: Identity, chat: Chat | None) -> Identity:
    """The identity as it acts in *chat*; read flags and message roles follow it."""
    chat = assert_chat_access(identity, chat)
    return identity.acting_as(role_in(identity, chat))
