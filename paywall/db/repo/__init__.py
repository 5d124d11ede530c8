from paywall.db.repo.entitlements_repo import EntitlementsRepo
from paywall.db.repo.processed_events_repo import ProcessedEventsRepo
from paywall.db.repo.purchase_records_repo import PurchaseRecordsRepo
from paywall.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo
from paywall.db.repo.unlocks_repo import UnlocksRepo

__all__ = [
    "EntitlementsRepo",
    "ProcessedEventsRepo",
    "PurchaseRecordsRepo",
    "ReconciliationRunsRepo",
    "UnlocksRepo",
]
