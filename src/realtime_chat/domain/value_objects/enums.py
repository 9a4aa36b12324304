from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    """Side of a chat an identity acts on."""

    USER = "user"
    PROVIDER = "provider"

    @classmethod
    def of(cls, is_provider: bool) -> Role:
        return cls.PROVIDER if is_provider else cls.USER


class OutboxStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"
    SENT = "sent"
    DEAD = "dead"

    @classmethod
    def fetchable(cls) -> tuple[OutboxStatus, ...]:
        return (cls.PENDING, cls.FAILED)
