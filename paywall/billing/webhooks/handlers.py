from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from paywall.billing.catalog import MOMENT_LEVELS
from paywall.billing.errors import ReconciliationAnomaly
from paywall.db.repo.entitlements_repo import EntitlementsRepo
from paywall.db.repo.purchase_records_repo import PurchaseRecordsRepo
from paywall.db.repo.unlocks_repo import UnlocksRepo
from paywall.services.stripe_gateway import subscription_period_end

from .anomalies import plan_state_anomaly
from .constants import (
    ANOMALY_MISSING_DISCRIMINATORS,
    ANOMALY_MISSING_USER_ID,
    SUBSCRIPTION_STATUS_MAP,
)
from .events import ProviderEvent, invoice_subscription_id, object_id, object_metadata


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def handle_checkout_completed(session: AsyncSession, *, event: ProviderEvent) -> dict[str, object]:
    checkout = event.data_object
    metadata = object_metadata(checkout)
    checkout_session_id = object_id(checkout.get("id")) or ""

    user_id = metadata.get("userId")
    if not user_id:
        raise ReconciliationAnomaly(
            ANOMALY_MISSING_USER_ID,
            {"checkout_session_id": checkout_session_id, "metadata": metadata},
        )

    purchase_type = metadata.get("purchaseType")
    character_id = metadata.get("characterId")
    situation_id = metadata.get("situationId")
    moment_level = metadata.get("momentLevel")
    media_id = metadata.get("mediaId")

    await PurchaseRecordsRepo.create_if_absent(
        session,
        provider_event_id=event.event_id,
        checkout_session_id=checkout_session_id,
        user_id=user_id,
        payment_intent_id=object_id(checkout.get("payment_intent")),
        subscription_id=object_id(checkout.get("subscription")),
        purchase_type=purchase_type,
        product_code=metadata.get("productCode"),
        character_id=character_id,
        situation_id=situation_id,
        moment_level=moment_level,
        media_id=media_id,
        amount_total=_int_or_none(checkout.get("amount_total")),
        currency=checkout.get("currency") if isinstance(checkout.get("currency"), str) else None,
        metadata=dict(metadata),
    )

    if purchase_type == "moment":
        if not character_id or not situation_id or moment_level not in MOMENT_LEVELS:
            raise ReconciliationAnomaly(
                ANOMALY_MISSING_DISCRIMINATORS,
                {"user_id": user_id, "checkout_session_id": checkout_session_id, "metadata": metadata},
            )
        created = await UnlocksRepo.insert_moment_if_absent(
            session,
            user_id=user_id,
            character_id=character_id,
            situation_id=situation_id,
            moment_level=moment_level,
            source_event_id=event.event_id,
        )
        return {"user_id": user_id, "purchase_type": purchase_type, "unlock_created": created}

    if purchase_type == "media":
        if not character_id or not media_id:
            raise ReconciliationAnomaly(
                ANOMALY_MISSING_DISCRIMINATORS,
                {"user_id": user_id, "checkout_session_id": checkout_session_id, "metadata": metadata},
            )
        created = await UnlocksRepo.insert_media_if_absent(
            session,
            user_id=user_id,
            character_id=character_id,
            media_id=media_id,
            source_event_id=event.event_id,
        )
        return {"user_id": user_id, "purchase_type": purchase_type, "unlock_created": created}

    if purchase_type == "plus":
        await EntitlementsRepo.activate_plus_from_checkout(
            session,
            user_id=user_id,
            customer_id=object_id(checkout.get("customer")),
            subscription_id=object_id(checkout.get("subscription")),
        )
        return {"user_id": user_id, "purchase_type": purchase_type, "plus_activated": True}

    return {"user_id": user_id, "purchase_type": purchase_type, "recorded_only": True}


async def apply_plan_state(
    session: AsyncSession,
    *,
    customer_id: str | None,
    subscription_id: str | None,
    has_plus: bool,
    plus_status: str,
    plus_current_period_end: datetime | None,
) -> dict[str, object]:
    user_id = None
    if customer_id:
        user_id = await EntitlementsRepo.set_plan_state_for_customer(
            session,
            customer_id=customer_id,
            has_plus=has_plus,
            plus_status=plus_status,
            plus_current_period_end=plus_current_period_end,
            subscription_id=subscription_id,
        )
    if user_id is not None:
        return {"user_id": user_id, "plus_status": plus_status, "has_plus": has_plus}

    entitlement = None
    if customer_id:
        entitlement = await EntitlementsRepo.get_by_customer_id(session, customer_id=customer_id)
    if entitlement is None:
        raise plan_state_anomaly(
            customer_id=customer_id,
            subscription_id=subscription_id,
            has_plus=has_plus,
            plus_status=plus_status,
            plus_current_period_end=plus_current_period_end,
        )

    # The event belongs to a replaced subscription, or to one already canceled.
    skipped = (
        "subscription_canceled"
        if entitlement.provider_subscription_id == subscription_id
        else "stale_subscription"
    )
    return {
        "user_id": entitlement.user_id,
        "skipped": skipped,
        "subscription_id": subscription_id,
        "current_subscription_id": entitlement.provider_subscription_id,
    }


async def handle_invoice_paid(
    session: AsyncSession,
    *,
    event: ProviderEvent,
    period_end: datetime | None,
) -> dict[str, object]:
    invoice = event.data_object
    subscription_id = invoice_subscription_id(invoice)
    if subscription_id is None:
        return {"skipped": "invoice_without_subscription"}

    return await apply_plan_state(
        session,
        customer_id=object_id(invoice.get("customer")),
        subscription_id=subscription_id,
        has_plus=True,
        plus_status="active",
        plus_current_period_end=period_end,
    )


async def handle_subscription_updated(session: AsyncSession, *, event: ProviderEvent) -> dict[str, object]:
    subscription = event.data_object
    plus_status = SUBSCRIPTION_STATUS_MAP.get(str(subscription.get("status") or ""), "canceled")
    return await apply_plan_state(
        session,
        customer_id=object_id(subscription.get("customer")),
        subscription_id=object_id(subscription.get("id")),
        has_plus=plus_status == "active",
        plus_status=plus_status,
        plus_current_period_end=subscription_period_end(subscription),
    )


async def handle_subscription_deleted(session: AsyncSession, *, event: ProviderEvent) -> dict[str, object]:
    subscription = event.data_object
    return await apply_plan_state(
        session,
        customer_id=object_id(subscription.get("customer")),
        subscription_id=object_id(subscription.get("id")),
        has_plus=False,
        plus_status="canceled",
        plus_current_period_end=None,
    )
