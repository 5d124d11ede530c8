from __future__ import annotations

from celery.schedules import crontab


def configure_payments_reliability_schedule(celery_app) -> None:
    celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
    celery_app.conf.beat_schedule.update(
        {
            "recover-reconciliation-anomalies-every-5-minutes": {
                "task": "paywall.workers.tasks.payments_reliability.recover_reconciliation_anomalies",
                "schedule": 300.0,
                "options": {"queue": "q_high"},
            },
            "entitlements-reconciliation-every-15-minutes": {
                "task": "paywall.workers.tasks.payments_reliability.run_entitlements_reconciliation",
                "schedule": 900.0,
                "options": {"queue": "q_normal"},
            },
            "entitlements-reconciliation-daily-0330-utc": {
                "task": "paywall.workers.tasks.payments_reliability.run_entitlements_reconciliation",
                "schedule": crontab(hour=3, minute=30),
                "options": {"queue": "q_normal"},
            },
        }
    )
