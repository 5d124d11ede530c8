from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from paywall.billing.webhooks import WebhookService
from paywall.billing.webhooks.constants import OUTCOME_ANOMALY, OUTCOME_PENDING_REVIEW
from paywall.db.repo.entitlements_repo import EntitlementsRepo
from paywall.db.repo.processed_events_repo import ProcessedEventsRepo
from paywall.db.repo.purchase_records_repo import PurchaseRecordsRepo
from paywall.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo
from paywall.db.session import SessionLocal
from paywall.services.alerts import send_ops_alert
from paywall.services.payments_reliability import compute_reconciliation_diff, reconciliation_status
from paywall.workers.asyncio_runner import run_async_job
from paywall.workers.celery_app import celery_app
from paywall.workers.tasks.payments_reliability_schedule import configure_payments_reliability_schedule

logger = structlog.get_logger(__name__)


async def _recover_single_anomaly(provider_event_id: str) -> str:
    async with SessionLocal.begin() as session:
        return await WebhookService.recover_anomaly(session, provider_event_id=provider_event_id)


async def recover_reconciliation_anomalies_async(
    *,
    batch_size: int = 100,
    min_age_seconds: int = 60,
) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    older_than = now_utc - timedelta(seconds=min_age_seconds)

    async with SessionLocal() as session:
        candidate_ids = await ProcessedEventsRepo.list_open_anomaly_ids(
            session,
            older_than_utc=older_than,
            limit=batch_size,
        )

    summary: dict[str, int] = {
        "examined": len(candidate_ids),
        "recovered": 0,
        "superseded": 0,
        "review": 0,
        "retryable_failure": 0,
        "skipped": 0,
        "missing": 0,
        "errors": 0,
    }

    for provider_event_id in candidate_ids:
        try:
            outcome = await _recover_single_anomaly(provider_event_id)
        except Exception:
            summary["errors"] += 1
            logger.exception("stripe_anomaly_recovery_error", provider_event_id=provider_event_id)
            continue

        summary[outcome] = summary.get(outcome, 0) + 1

    if summary["review"] > 0 or summary["errors"] > 0:
        await send_ops_alert(event="paywall_anomaly_review_required", payload=dict(summary))

    logger.info("stripe_anomaly_recovery_finished", **summary)
    return summary


async def run_entitlements_reconciliation_async(*, grace_hours: int = 48) -> dict[str, int | str]:
    started_at = datetime.now(timezone.utc)

    async with SessionLocal.begin() as session:
        open_anomalies_count = await ProcessedEventsRepo.count_by_outcome(session, outcome=OUTCOME_ANOMALY)
        pending_review_count = await ProcessedEventsRepo.count_by_outcome(
            session,
            outcome=OUTCOME_PENDING_REVIEW,
        )
        stale_active_plus_count = await EntitlementsRepo.count_stale_active_plus(
            session,
            period_ended_before_utc=started_at - timedelta(hours=grace_hours),
        )
        moment_purchases_missing_unlock = await PurchaseRecordsRepo.count_moment_purchases_without_unlock(session)
        media_purchases_missing_unlock = await PurchaseRecordsRepo.count_media_purchases_without_unlock(session)
        diff_count = compute_reconciliation_diff(
            open_anomalies_count=open_anomalies_count,
            pending_review_count=pending_review_count,
            stale_active_plus_count=stale_active_plus_count,
            moment_purchases_missing_unlock=moment_purchases_missing_unlock,
            media_purchases_missing_unlock=media_purchases_missing_unlock,
        )
        status = reconciliation_status(diff_count)
        result: dict[str, int | str] = {
            "open_anomalies_count": open_anomalies_count,
            "pending_review_count": pending_review_count,
            "stale_active_plus_count": stale_active_plus_count,
            "moment_purchases_missing_unlock": moment_purchases_missing_unlock,
            "media_purchases_missing_unlock": media_purchases_missing_unlock,
            "diff_count": diff_count,
            "status": status,
        }

        await ReconciliationRunsRepo.create(
            session,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            status=status,
            diff_count=diff_count,
            report=dict(result),
        )

    if diff_count > 0:
        await send_ops_alert(event="paywall_reconciliation_diff_detected", payload=dict(result))
        logger.warning("paywall_reconciliation_diff_detected", **result)
    else:
        logger.info("paywall_reconciliation_finished", **result)
    return result


@celery_app.task(name="paywall.workers.tasks.payments_reliability.recover_reconciliation_anomalies")
def recover_reconciliation_anomalies(batch_size: int = 100, min_age_seconds: int = 60) -> dict[str, int]:
    return run_async_job(
        recover_reconciliation_anomalies_async(
            batch_size=batch_size,
            min_age_seconds=min_age_seconds,
        ),
        job_name="recover_reconciliation_anomalies",
    )


@celery_app.task(name="paywall.workers.tasks.payments_reliability.run_entitlements_reconciliation")
def run_entitlements_reconciliation(grace_hours: int = 48) -> dict[str, int | str]:
    return run_async_job(
        run_entitlements_reconciliation_async(grace_hours=grace_hours),
        job_name="run_entitlements_reconciliation",
    )


configure_payments_reliability_schedule(celery_app)
