from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from paywall.core.config import get_settings

logger = structlog.get_logger(__name__)
DEFAULT_PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
VALID_CHANNELS = ("generic", "slack", "pagerduty")
VALID_SEVERITIES = ("critical", "error", "warning", "info")
SEVERITY_COLOR = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}


@dataclass(frozen=True)
class AlertRoute:
    channels: tuple[str, ...]
    severity: str


DEFAULT_ALERT_ROUTE = AlertRoute(channels=("generic",), severity="warning")
EVENT_ALERT_ROUTES = {
    "paywall_reconciliation_diff_detected": AlertRoute(
        channels=("pagerduty", "slack", "generic"),
        severity="critical",
    ),
    "paywall_anomaly_review_required": AlertRoute(
        channels=("pagerduty", "slack", "generic"),
        severity="error",
    ),
}


def _setting_str(settings: object, attr: str) -> str:
    value = getattr(settings, attr, "")
    return value.strip() if isinstance(value, str) else ""


def resolve_alert_route(*, event: str, policy_raw: str) -> AlertRoute:
    """Event route, optionally overridden by OPS_ALERT_ESCALATION_POLICY_JSON.

    The policy maps an event name (or ``*``) to ``{"channels": [...], "severity": ...}``.
    """
    route = EVENT_ALERT_ROUTES.get(event, DEFAULT_ALERT_ROUTE)
    if not policy_raw:
        return route

    try:
        policy = json.loads(policy_raw)
    except json.JSONDecodeError:
        logger.warning("ops_alert_policy_parse_failed")
        return route
    if not isinstance(policy, dict):
        logger.warning("ops_alert_policy_invalid_shape")
        return route

    override = policy.get(event) or policy.get("*")
    if not isinstance(override, dict):
        return route

    raw_channels = override.get("channels")
    channels = route.channels
    if isinstance(raw_channels, list):
        picked = tuple(
            dict.fromkeys(
                channel.strip().lower()
                for channel in raw_channels
                if isinstance(channel, str) and channel.strip().lower() in VALID_CHANNELS
            )
        )
        channels = picked or route.channels

    raw_severity = override.get("severity")
    severity = route.severity
    if isinstance(raw_severity, str) and raw_severity.strip().lower() in VALID_SEVERITIES:
        severity = raw_severity.strip().lower()

    return AlertRoute(channels=channels, severity=severity)


def resolve_targets(*, route: AlertRoute, settings: object) -> list[tuple[str, str]]:
    channel_urls = {
        "generic": _setting_str(settings, "ops_alert_webhook_url"),
        "slack": _setting_str(settings, "ops_alert_slack_webhook_url"),
        "pagerduty": "",
    }
    if _setting_str(settings, "ops_alert_pagerduty_routing_key"):
        channel_urls["pagerduty"] = (
            _setting_str(settings, "ops_alert_pagerduty_events_url") or DEFAULT_PAGERDUTY_EVENTS_URL
        )

    targets = [(channel, channel_urls[channel]) for channel in route.channels if channel_urls.get(channel)]
    if not targets and channel_urls["generic"]:
        targets.append(("generic", channel_urls["generic"]))
    return targets


def build_alert_body(
    *,
    channel: str,
    event: str,
    payload: dict[str, object],
    route: AlertRoute,
    sent_at: datetime,
    settings: object,
) -> dict[str, Any]:
    app_env = _setting_str(settings, "app_env") or "dev"
    if channel == "slack":
        return {
            "text": f"[{route.severity.upper()}] {event}",
            "attachments": [
                {
                    "color": SEVERITY_COLOR.get(route.severity, SEVERITY_COLOR["warning"]),
                    "fields": [
                        {"title": "Environment", "value": app_env, "short": True},
                        {"title": "Sent At", "value": sent_at.isoformat(), "short": True},
                        {
                            "title": "Payload",
                            "value": json.dumps(payload, sort_keys=True, default=str),
                            "short": False,
                        },
                    ],
                }
            ],
        }
    if channel == "pagerduty":
        return {
            "routing_key": _setting_str(settings, "ops_alert_pagerduty_routing_key"),
            "event_action": "trigger",
            "dedup_key": f"whispr-paywall:{event}",
            "payload": {
                "summary": f"[{app_env}] {event}",
                "source": f"whispr-paywall/{app_env}",
                "severity": route.severity,
                "timestamp": sent_at.isoformat(),
                "component": "paywall-reconciler",
                "custom_details": {"event": event, "payload": payload},
            },
        }
    return {
        "event": event,
        "payload": payload,
        "sent_at": sent_at.isoformat(),
        "severity": route.severity,
    }


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    settings = get_settings()
    route = resolve_alert_route(
        event=event,
        policy_raw=_setting_str(settings, "ops_alert_escalation_policy_json"),
    )
    targets = resolve_targets(route=route, settings=settings)
    if not targets:
        logger.warning("ops_alert_no_targets", alert_event=event)
        return False

    sent_at = datetime.now(timezone.utc)
    delivered_to: list[str] = []
    failed_to: list[str] = []
    async with httpx.AsyncClient(timeout=5.0) as client:
        for channel, url in targets:
            body = build_alert_body(
                channel=channel,
                event=event,
                payload=payload,
                route=route,
                sent_at=sent_at,
                settings=settings,
            )
            try:
                response = await client.post(url, json=body)
                response.raise_for_status()
            except httpx.HTTPError:
                logger.exception("ops_alert_delivery_failed", alert_event=event, provider=channel)
                failed_to.append(channel)
                continue
            delivered_to.append(channel)

    if not delivered_to:
        logger.error("ops_alert_delivery_exhausted", alert_event=event, failed_to=failed_to)
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=route.severity,
        delivered_to=delivered_to,
        failed_to=failed_to,
    )
    return True
