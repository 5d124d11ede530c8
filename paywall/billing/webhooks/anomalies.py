from __future__ import annotations

from copy import deepcopy
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from paywall.billing.errors import ReconciliationAnomaly
from paywall.db.repo.entitlements_repo import EntitlementsRepo
from paywall.db.repo.processed_events_repo import ProcessedEventsRepo

from .constants import (
    ANOMALY_UNKNOWN_CUSTOMER,
    MAX_ANOMALY_RECOVERY_ATTEMPTS,
    OUTCOME_ANOMALY,
    OUTCOME_PENDING_REVIEW,
    OUTCOME_RECOVERED,
)

logger = structlog.get_logger(__name__)

RECOVERY_ATTEMPTS_KEY = "attempts"


def plan_state_anomaly(
    *,
    customer_id: str | None,
    subscription_id: str | None,
    has_plus: bool,
    plus_status: str,
    plus_current_period_end: datetime | None,
) -> ReconciliationAnomaly:
    return ReconciliationAnomaly(
        ANOMALY_UNKNOWN_CUSTOMER,
        {
            "customer_id": customer_id,
            "subscription_id": subscription_id,
            "target": {
                "has_plus": has_plus,
                "plus_status": plus_status,
                "plus_current_period_end": (
                    plus_current_period_end.isoformat() if plus_current_period_end else None
                ),
            },
        },
    )


def anomaly_detail(anomaly: ReconciliationAnomaly) -> dict[str, object]:
    detail = deepcopy(anomaly.detail)
    detail["reason"] = anomaly.reason
    detail.setdefault(RECOVERY_ATTEMPTS_KEY, 0)
    return detail


def increment_recovery_attempts(detail: dict[str, object] | None) -> tuple[dict[str, object], int]:
    payload = deepcopy(detail) if isinstance(detail, dict) else {}
    try:
        current_attempts = int(payload.get(RECOVERY_ATTEMPTS_KEY, 0))
    except (TypeError, ValueError):
        current_attempts = 0

    next_attempts = current_attempts + 1
    payload[RECOVERY_ATTEMPTS_KEY] = next_attempts
    return payload, next_attempts


def _parse_period_end(raw_value: object) -> datetime | None:
    if not isinstance(raw_value, str) or not raw_value:
        return None
    try:
        return datetime.fromisoformat(raw_value)
    except ValueError:
        return None


async def recover_anomaly(session: AsyncSession, *, provider_event_id: str) -> str:
    """Re-apply a customer-keyed anomaly whose customer may now be known.

    Returns one of: missing, skipped, recovered, superseded, review,
    retryable_failure.
    """
    processed_event = await ProcessedEventsRepo.get_for_update(
        session,
        provider_event_id=provider_event_id,
    )
    if processed_event is None:
        return "missing"
    if processed_event.outcome != OUTCOME_ANOMALY:
        return "skipped"

    detail = dict(processed_event.detail or {})
    target = detail.get("target")
    customer_id = detail.get("customer_id")
    if (
        detail.get("reason") != ANOMALY_UNKNOWN_CUSTOMER
        or not isinstance(target, dict)
        or not isinstance(customer_id, str)
        or not customer_id
    ):
        processed_event.outcome = OUTCOME_PENDING_REVIEW
        return "review"

    entitlement = await EntitlementsRepo.get_by_customer_id(session, customer_id=customer_id)
    if entitlement is None:
        payload, attempts = increment_recovery_attempts(detail)
        processed_event.detail = payload
        if attempts >= MAX_ANOMALY_RECOVERY_ATTEMPTS:
            processed_event.outcome = OUTCOME_PENDING_REVIEW
            return "review"
        return "retryable_failure"

    # A later event already wrote this entitlement; the stored target is stale.
    if (
        entitlement.plan_updated_at is not None
        and entitlement.plan_updated_at > processed_event.processed_at
    ):
        detail["superseded"] = True
        processed_event.detail = detail
        processed_event.outcome = OUTCOME_RECOVERED
        return "superseded"

    subscription_id = detail.get("subscription_id")
    updated_user_id = await EntitlementsRepo.set_plan_state_for_customer(
        session,
        customer_id=customer_id,
        has_plus=bool(target.get("has_plus")),
        plus_status=str(target.get("plus_status") or "canceled"),
        plus_current_period_end=_parse_period_end(target.get("plus_current_period_end")),
        subscription_id=subscription_id if isinstance(subscription_id, str) else None,
    )
    if updated_user_id is None:
        # The customer is on another subscription now, or this one is canceled.
        detail["superseded"] = True
        detail["current_subscription_id"] = entitlement.provider_subscription_id
        processed_event.detail = detail
        processed_event.outcome = OUTCOME_RECOVERED
        return "superseded"

    processed_event.outcome = OUTCOME_RECOVERED
    logger.info(
        "stripe_anomaly_recovered",
        provider_event_id=provider_event_id,
        user_id=entitlement.user_id,
        plus_status=target.get("plus_status"),
    )
    return "recovered"
