from __future__ import annotations

from .anomalies import increment_recovery_attempts, recover_anomaly
from .constants import HANDLED_EVENT_TYPES, MAX_ANOMALY_RECOVERY_ATTEMPTS
from .events import parse_provider_event
from .reconciler import apply_provider_event, dispatch_event, process_webhook


class WebhookService:
    parse_provider_event = staticmethod(parse_provider_event)
    dispatch_event = staticmethod(dispatch_event)
    apply_provider_event = staticmethod(apply_provider_event)
    process_webhook = staticmethod(process_webhook)
    recover_anomaly = staticmethod(recover_anomaly)
    increment_recovery_attempts = staticmethod(increment_recovery_attempts)


__all__ = [
    "HANDLED_EVENT_TYPES",
    "MAX_ANOMALY_RECOVERY_ATTEMPTS",
    "WebhookService",
]
