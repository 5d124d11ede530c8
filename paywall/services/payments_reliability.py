from __future__ import annotations


def compute_reconciliation_diff(
    *,
    open_anomalies_count: int,
    pending_review_count: int,
    stale_active_plus_count: int,
    moment_purchases_missing_unlock: int,
    media_purchases_missing_unlock: int,
) -> int:
    return (
        max(0, open_anomalies_count)
        + max(0, pending_review_count)
        + max(0, stale_active_plus_count)
        + max(0, moment_purchases_missing_unlock)
        + max(0, media_purchases_missing_unlock)
    )


def reconciliation_status(diff_count: int) -> str:
    return "OK" if diff_count == 0 else "DIFF"
