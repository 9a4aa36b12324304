from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Protocol


class OutboxEvent(Protocol):
    """Domain event that can be relayed to other service instances."""

    event_type: ClassVar[str]

    def to_payload(self) -> dict[str, Any]: ...


class OutboxWriter(Protocol):
    async def add(self, event: OutboxEvent) -> None: ...

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]: ...

    async def mark_sent(self, ids: list[int]) -> None: ...

    async def mark_failed(
        self, record_id: int, next_retry_at: datetime, error: str | None = None
    ) -> None: ...

    async def mark_dead(self, record_id: int) -> None: ...


@dataclass(frozen=True, slots=True)
class OutboxRecord:
    """Lightweight read-model for the outbox worker."""

    id: int
    event_type: str
    payload: dict[str, Any]
    attempts: int
