"""Import all models so ``Base.metadata`` sees every table."""
from realtime_chat.infrastructure.db.models.chat import ChatModel
from realtime_chat.infrastructure.db.models.message import MessageModel
from realtime_chat.infrastructure.db.models.outbox import OutboxMessageModel

__all__ = [
    "ChatModel",
    "MessageModel",
    "OutboxMessageModel",
]
