from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import ColumnElement, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from realtime_chat.application.repositories.outbox import OutboxEvent, OutboxRecord
from realtime_chat.domain.value_objects.enums import OutboxStatus
from realtime_chat.infrastructure.db.models.outbox import OutboxMessageModel


def _due(now: datetime) -> ColumnElement[bool]:
    return or_(
        OutboxMessageModel.next_retry_at.is_(None),
        OutboxMessageModel.next_retry_at <= now,
    )


class OutboxWriterRepo:
    """Outbox rows for chat events relayed to the other app instances."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, event: OutboxEvent) -> None:
        self._session.add(
            OutboxMessageModel(
                event_type=event.event_type,
                payload=event.to_payload(),
                status=OutboxStatus.PENDING,
            )
        )
        await self._session.flush()

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        # Rows are claimed with SKIP LOCKED so several workers can poll the same table.
        claimed = (
            select(OutboxMessageModel)
            .where(
                OutboxMessageModel.status.in_(OutboxStatus.fetchable()),
                _due(datetime.now(timezone.utc)),
            )
            .order_by(OutboxMessageModel.created_at, OutboxMessageModel.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        models = list((await self._session.scalars(claimed)).all())
        if not models:
            return []

        await self._set_status([m.id for m in models], OutboxStatus.PROCESSING)
        return [
            OutboxRecord(id=m.id, event_type=m.event_type, payload=m.payload, attempts=m.attempts)
            for m in models
        ]

    async def mark_sent(self, ids: list[int]) -> None:
        if ids:
            await self._set_status(ids, OutboxStatus.SENT, last_error=None)

    async def mark_failed(
        self,
        record_id: int,
        next_retry_at: datetime,
        error: str | None = None,
    ) -> None:
        await self._set_status(
            [record_id],
            OutboxStatus.FAILED,
            attempts=OutboxMessageModel.attempts + 1,
            next_retry_at=next_retry_at,
            last_error=error,
        )

    async def mark_dead(self, record_id: int) -> None:
        """Park a record that ran out of attempts so it is no longer fetched."""
        await self._set_status([record_id], OutboxStatus.DEAD)

    async def _set_status(self, ids: list[int], status: OutboxStatus, **values: object) -> None:
        await self._session.execute(
            update(OutboxMessageModel)
            .where(OutboxMessageModel.id.in_(ids))
            .values(status=status, **values)
        )
