from paywall.workers.tasks.payments_reliability import (
    recover_reconciliation_anomalies,
    run_entitlements_reconciliation,
)

__all__ = [
    "recover_reconciliation_anomalies",
    "run_entitlements_reconciliation",
]
