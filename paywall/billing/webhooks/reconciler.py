from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from paywall.billing.errors import ReconciliationAnomaly
from paywall.billing.types import WebhookResult
from paywall.db.repo.processed_events_repo import ProcessedEventsRepo
from paywall.db.session import SessionLocal
from paywall.services.stripe_gateway import StripeGateway

from .anomalies import anomaly_detail
from .constants import (
    CHECKOUT_SESSION_COMPLETED,
    HANDLED_EVENT_TYPES,
    INVOICE_PAID,
    OUTCOME_ANOMALY,
    OUTCOME_APPLIED,
    SUBSCRIPTION_DELETED,
    SUBSCRIPTION_UPDATED,
)
from .events import ProviderEvent, invoice_subscription_id, parse_provider_event
from .handlers import (
    handle_checkout_completed,
    handle_invoice_paid,
    handle_subscription_deleted,
    handle_subscription_updated,
)

logger = structlog.get_logger(__name__)


async def _prefetch_period_end(event: ProviderEvent, gateway: StripeGateway) -> datetime | None:
    if event.event_type != INVOICE_PAID:
        return None
    subscription_id = invoice_subscription_id(event.data_object)
    if subscription_id is None:
        return None
    return await gateway.get_subscription_period_end(subscription_id)


async def dispatch_event(
    session: AsyncSession,
    *,
    event: ProviderEvent,
    period_end: datetime | None = None,
) -> dict[str, object]:
    if event.event_type == CHECKOUT_SESSION_COMPLETED:
        return await handle_checkout_completed(session, event=event)
    if event.event_type == INVOICE_PAID:
        return await handle_invoice_paid(session, event=event, period_end=period_end)
    if event.event_type == SUBSCRIPTION_UPDATED:
        return await handle_subscription_updated(session, event=event)
    if event.event_type == SUBSCRIPTION_DELETED:
        return await handle_subscription_deleted(session, event=event)
    raise ValueError(f"Unsupported event type: {event.event_type}")


async def apply_provider_event(
    *,
    event: ProviderEvent,
    period_end: datetime | None = None,
) -> WebhookResult:
    """Claim the ledger row and apply the event in one transaction.

    Either both the ledger row and the entitlement mutation commit, or
    neither does and the provider redelivers the event.
    """
    async with SessionLocal.begin() as session:
        claimed = await ProcessedEventsRepo.try_claim(
            session,
            provider_event_id=event.event_id,
            event_type=event.event_type,
            outcome=OUTCOME_APPLIED,
        )
        if not claimed:
            logger.info(
                "stripe_webhook_duplicate",
                provider_event_id=event.event_id,
                event_type=event.event_type,
                claim_lost=True,
            )
            return WebhookResult(status="duplicate", event_id=event.event_id, event_type=event.event_type)

        try:
            summary = await dispatch_event(session, event=event, period_end=period_end)
        except ReconciliationAnomaly as anomaly:
            detail = anomaly_detail(anomaly)
            await ProcessedEventsRepo.set_outcome(
                session,
                provider_event_id=event.event_id,
                outcome=OUTCOME_ANOMALY,
                detail=detail,
            )
            logger.warning(
                "stripe_webhook_anomaly",
                provider_event_id=event.event_id,
                event_type=event.event_type,
                reason=anomaly.reason,
                customer_id=detail.get("customer_id"),
            )
            return WebhookResult(
                status="anomaly",
                event_id=event.event_id,
                event_type=event.event_type,
                detail=detail,
            )

    logger.info(
        "stripe_webhook_applied",
        provider_event_id=event.event_id,
        event_type=event.event_type,
        **summary,
    )
    return WebhookResult(
        status="applied",
        event_id=event.event_id,
        event_type=event.event_type,
        detail=summary,
    )


async def process_webhook(
    *,
    raw_body: bytes,
    signature_header: str | None,
    gateway: StripeGateway,
) -> WebhookResult:
    event = parse_provider_event(gateway.construct_event(raw_body, signature_header))

    if event.event_type not in HANDLED_EVENT_TYPES:
        logger.info("stripe_webhook_ignored", provider_event_id=event.event_id, event_type=event.event_type)
        return WebhookResult(status="ignored", event_id=event.event_id, event_type=event.event_type)

    async with SessionLocal() as session:
        already_processed = await ProcessedEventsRepo.exists(session, provider_event_id=event.event_id)
    if already_processed:
        logger.info("stripe_webhook_duplicate", provider_event_id=event.event_id, event_type=event.event_type)
        return WebhookResult(status="duplicate", event_id=event.event_id, event_type=event.event_type)

    period_end = await _prefetch_period_end(event, gateway)
    return await apply_provider_event(event=event, period_end=period_end)
