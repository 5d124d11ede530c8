from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from paywall.db.models.processed_events import ProcessedEvent


class ProcessedEventsRepo:
    @staticmethod
    async def exists(session: AsyncSession, *, provider_event_id: str) -> bool:
        stmt = select(ProcessedEvent.provider_event_id).where(
            ProcessedEvent.provider_event_id == provider_event_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def try_claim(
        session: AsyncSession,
        *,
        provider_event_id: str,
        event_type: str,
        outcome: str = "APPLIED",
    ) -> bool:
        stmt = (
            postgresql_insert(ProcessedEvent)
            .values(
                provider_event_id=provider_event_id,
                event_type=event_type,
                outcome=outcome,
                processed_at=func.now(),
            )
            .on_conflict_do_nothing(index_elements=[ProcessedEvent.provider_event_id])
            .returning(ProcessedEvent.provider_event_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_outcome(
        session: AsyncSession,
        *,
        provider_event_id: str,
        outcome: str,
        detail: dict[str, object] | None = None,
    ) -> int:
        values: dict[str, object] = {"outcome": outcome}
        if detail is not None:
            values["detail"] = detail
        stmt = (
            update(ProcessedEvent)
            .where(ProcessedEvent.provider_event_id == provider_event_id)
            .values(**values)
            .returning(ProcessedEvent.provider_event_id)
        )
        result = await session.execute(stmt)
        return 1 if result.scalar_one_or_none() is not None else 0

    @staticmethod
    async def get_for_update(
        session: AsyncSession,
        *,
        provider_event_id: str,
    ) -> ProcessedEvent | None:
        stmt = (
            select(ProcessedEvent)
            .where(ProcessedEvent.provider_event_id == provider_event_id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_open_anomaly_ids(
        session: AsyncSession,
        *,
        older_than_utc: datetime,
        limit: int,
    ) -> list[str]:
        stmt = (
            select(ProcessedEvent.provider_event_id)
            .where(
                ProcessedEvent.outcome == "ANOMALY",
                ProcessedEvent.processed_at < older_than_utc,
            )
            .order_by(ProcessedEvent.processed_at.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return [str(event_id) for event_id in result.scalars()]

    @staticmethod
    async def count_by_outcome(session: AsyncSession, *, outcome: str) -> int:
        stmt = select(func.count(ProcessedEvent.provider_event_id)).where(
            ProcessedEvent.outcome == outcome
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
