from paywall.db.models.entitlements import Entitlement
from paywall.db.models.processed_events import ProcessedEvent
from paywall.db.models.purchase_records import PurchaseRecord
from paywall.db.models.reconciliation_runs import ReconciliationRun
from paywall.db.models.unlocks import Unlock

__all__ = [
    "Entitlement",
    "ProcessedEvent",
    "PurchaseRecord",
    "ReconciliationRun",
    "Unlock",
]
