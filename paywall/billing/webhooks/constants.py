from __future__ import annotations

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.paid"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

HANDLED_EVENT_TYPES = frozenset(
    {
        CHECKOUT_SESSION_COMPLETED,
        INVOICE_PAID,
        SUBSCRIPTION_UPDATED,
        SUBSCRIPTION_DELETED,
    }
)

OUTCOME_APPLIED = "APPLIED"
OUTCOME_ANOMALY = "ANOMALY"
OUTCOME_RECOVERED = "RECOVERED"
OUTCOME_PENDING_REVIEW = "PENDING_REVIEW"

ANOMALY_UNKNOWN_CUSTOMER = "unknown_customer"
ANOMALY_MISSING_USER_ID = "missing_user_id"
ANOMALY_MISSING_DISCRIMINATORS = "missing_discriminators"

# Stripe subscription status -> plus_status; any other status maps to canceled.
SUBSCRIPTION_STATUS_MAP = {
    "active": "active",
    "past_due": "past_due",
}

MAX_ANOMALY_RECOVERY_ATTEMPTS = 3
