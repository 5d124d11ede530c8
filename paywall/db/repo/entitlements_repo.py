from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from paywall.db.models.entitlements import Entitlement


class EntitlementsRepo:
    @staticmethod
    async def get_by_user_id(session: AsyncSession, *, user_id: str) -> Entitlement | None:
        return await session.get(Entitlement, user_id)

    @staticmethod
    async def get_customer_id(session: AsyncSession, *, user_id: str) -> str | None:
        stmt = select(Entitlement.provider_customer_id).where(Entitlement.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_customer_id(
        session: AsyncSession,
        *,
        customer_id: str,
    ) -> Entitlement | None:
        stmt = select(Entitlement).where(Entitlement.provider_customer_id == customer_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def ensure_customer_id(
        session: AsyncSession,
        *,
        user_id: str,
        customer_id: str,
    ) -> str:
        """Cache a provider customer id for the user; the first stored value wins.

        Returns the id that is actually stored, which differs from ``customer_id``
        when a concurrent request persisted its own customer first.
        """
        insert_stmt = postgresql_insert(Entitlement).values(
            user_id=user_id,
            provider_customer_id=customer_id,
        )
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=[Entitlement.user_id],
            set_={
                "provider_customer_id": func.coalesce(
                    Entitlement.provider_customer_id,
                    insert_stmt.excluded.provider_customer_id,
                ),
                "updated_at": func.now(),
            },
        ).returning(Entitlement.provider_customer_id)
        result = await session.execute(stmt)
        return str(result.scalar_one())

    @staticmethod
    async def activate_plus_from_checkout(
        session: AsyncSession,
        *,
        user_id: str,
        customer_id: str | None,
        subscription_id: str | None,
    ) -> None:
        insert_stmt = postgresql_insert(Entitlement).values(
            user_id=user_id,
            has_plus=True,
            plus_status="active",
            provider_customer_id=customer_id,
            provider_subscription_id=subscription_id,
            plan_updated_at=func.now(),
        )
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=[Entitlement.user_id],
            set_={
                "has_plus": True,
                "plus_status": "active",
                "provider_subscription_id": func.coalesce(
                    insert_stmt.excluded.provider_subscription_id,
                    Entitlement.provider_subscription_id,
                ),
                "provider_customer_id": func.coalesce(
                    Entitlement.provider_customer_id,
                    insert_stmt.excluded.provider_customer_id,
                ),
                "plan_updated_at": func.now(),
                "updated_at": func.now(),
            },
        )
        await session.execute(stmt)

    @staticmethod
    async def set_plan_state_for_customer(
        session: AsyncSession,
        *,
        customer_id: str,
        has_plus: bool,
        plus_status: str,
        plus_current_period_end: datetime | None = None,
        subscription_id: str | None = None,
    ) -> str | None:
        """Write plan state for the customer's current subscription.

        Only a row without a recorded subscription, or one recorded with the same
        ``subscription_id``, is updated. A canceled subscription stays canceled.
        Returns ``None`` when no row matched.
        """
        values: dict[str, object] = {
            "has_plus": has_plus,
            "plus_status": plus_status,
            "plan_updated_at": func.now(),
            "updated_at": func.now(),
        }
        if plus_current_period_end is not None:
            values["plus_current_period_end"] = plus_current_period_end
        if subscription_id is not None:
            values["provider_subscription_id"] = subscription_id

        conditions = [
            Entitlement.provider_customer_id == customer_id,
            or_(
                Entitlement.provider_subscription_id.is_(None),
                Entitlement.provider_subscription_id == subscription_id,
            ),
        ]
        if plus_status != "canceled":
            conditions.append(Entitlement.plus_status != "canceled")

        stmt = (
            update(Entitlement)
            .where(*conditions)
            .values(**values)
            .returning(Entitlement.user_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_stale_active_plus(
        session: AsyncSession,
        *,
        period_ended_before_utc: datetime,
    ) -> int:
        stmt = select(func.count(Entitlement.user_id)).where(
            Entitlement.has_plus.is_(True),
            Entitlement.plus_current_period_end.is_not(None),
            Entitlement.plus_current_period_end < period_ended_before_utc,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
