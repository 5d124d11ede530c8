from __future__ import annotations

from sqlalchemy import Select, and_, exists, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from paywall.db.models.processed_events import ProcessedEvent
from paywall.db.models.purchase_records import PurchaseRecord
from paywall.db.models.unlocks import Unlock

# Ledger outcomes already reported on their own by the reconciliation run.
OPEN_LEDGER_OUTCOMES = ("ANOMALY", "PENDING_REVIEW")


def missing_unlock_count_stmt(purchase_type: str) -> Select:
    """Count purchases of ``purchase_type`` with no matching unlock row.

    Purchases whose ledger row is an open anomaly or under review are left out.
    """
    if purchase_type == "moment":
        unlock_match = and_(
            Unlock.situation_id == PurchaseRecord.situation_id,
            Unlock.moment_level == PurchaseRecord.moment_level,
        )
    else:
        unlock_match = Unlock.media_id == PurchaseRecord.media_id

    matching_unlock = exists().where(
        and_(
            Unlock.unlock_type == purchase_type,
            Unlock.user_id == PurchaseRecord.user_id,
            Unlock.character_id == PurchaseRecord.character_id,
            unlock_match,
        )
    )
    open_ledger_row = exists().where(
        and_(
            ProcessedEvent.provider_event_id == PurchaseRecord.provider_event_id,
            ProcessedEvent.outcome.in_(OPEN_LEDGER_OUTCOMES),
        )
    )
    return select(func.count(PurchaseRecord.id)).where(
        PurchaseRecord.purchase_type == purchase_type,
        ~matching_unlock,
        ~open_ledger_row,
    )


class PurchaseRecordsRepo:
    @staticmethod
    async def create_if_absent(
        session: AsyncSession,
        *,
        provider_event_id: str,
        checkout_session_id: str,
        user_id: str,
        payment_intent_id: str | None,
        subscription_id: str | None,
        purchase_type: str | None,
        product_code: str | None,
        character_id: str | None,
        situation_id: str | None,
        moment_level: str | None,
        media_id: str | None,
        amount_total: int | None,
        currency: str | None,
        metadata: dict[str, object],
    ) -> bool:
        stmt = (
            postgresql_insert(PurchaseRecord)
            .values(
                provider_event_id=provider_event_id,
                checkout_session_id=checkout_session_id,
                payment_intent_id=payment_intent_id,
                subscription_id=subscription_id,
                user_id=user_id,
                purchase_type=purchase_type,
                product_code=product_code,
                character_id=character_id,
                situation_id=situation_id,
                moment_level=moment_level,
                media_id=media_id,
                amount_total=amount_total,
                currency=currency,
                status="completed",
                metadata_=metadata,
            )
            .on_conflict_do_nothing(index_elements=[PurchaseRecord.provider_event_id])
            .returning(PurchaseRecord.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def count_moment_purchases_without_unlock(session: AsyncSession) -> int:
        result = await session.execute(missing_unlock_count_stmt("moment"))
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_media_purchases_without_unlock(session: AsyncSession) -> int:
        result = await session.execute(missing_unlock_count_stmt("media"))
        return int(result.scalar_one() or 0)
