from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from paywall.services import alerts


class _Response:
    def raise_for_status(self) -> None:
        return None


class _Client:
    def __init__(self, calls: list[dict[str, Any]], *, fail_urls: set[str] | None = None) -> None:
        self._calls = calls
        self._fail_urls = fail_urls or set()

    async def __aenter__(self) -> "_Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None

    async def post(self, url: str, json: dict[str, object]) -> _Response:
        self._calls.append({"url": url, "json": json})
        if url in self._fail_urls:
            raise httpx.ConnectError("delivery failed")
        return _Response()


def _settings(**overrides: object) -> SimpleNamespace:
    base = {
        "app_env": "test",
        "ops_alert_webhook_url": "",
        "ops_alert_slack_webhook_url": "",
        "ops_alert_pagerduty_events_url": "",
        "ops_alert_pagerduty_routing_key": "",
        "ops_alert_escalation_policy_json": "",
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def _patch_http_client(
    monkeypatch: pytest.MonkeyPatch,
    calls: list[dict[str, Any]],
    *,
    fail_urls: set[str] | None = None,
) -> None:
    def factory(timeout: float) -> _Client:  # noqa: ARG001
        return _Client(calls, fail_urls=fail_urls)

    monkeypatch.setattr(alerts.httpx, "AsyncClient", factory)


@pytest.mark.asyncio
async def test_send_ops_alert_returns_false_when_no_targets_configured(monkeypatch) -> None:
    monkeypatch.setattr(alerts, "get_settings", lambda: _settings())
    sent = await alerts.send_ops_alert(event="test_event", payload={"k": "v"})
    assert sent is False


@pytest.mark.asyncio
async def test_send_ops_alert_posts_to_generic_webhook(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(
        alerts,
        "get_settings",
        lambda: _settings(ops_alert_webhook_url="https://ops.example.local/hook"),
    )
    _patch_http_client(monkeypatch, calls)

    sent = await alerts.send_ops_alert(event="paywall_anomaly_review_required", payload={"review": 2})

    assert sent is True
    assert len(calls) == 1
    assert calls[0]["url"] == "https://ops.example.local/hook"
    body = calls[0]["json"]
    assert body["event"] == "paywall_anomaly_review_required"
    assert body["severity"] == "error"
    assert body["payload"] == {"review": 2}


@pytest.mark.asyncio
async def test_reconciliation_diff_pages_pagerduty_and_slack(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(
        alerts,
        "get_settings",
        lambda: _settings(
            ops_alert_slack_webhook_url="https://slack.example.local/hook",
            ops_alert_pagerduty_routing_key="pd_key",
        ),
    )
    _patch_http_client(monkeypatch, calls)

    sent = await alerts.send_ops_alert(event="paywall_reconciliation_diff_detected", payload={"diff_count": 3})

    assert sent is True
    assert [call["url"] for call in calls] == [
        alerts.DEFAULT_PAGERDUTY_EVENTS_URL,
        "https://slack.example.local/hook",
    ]
    assert calls[0]["json"]["routing_key"] == "pd_key"
    assert calls[0]["json"]["payload"]["severity"] == "critical"
    assert calls[0]["json"]["dedup_key"] == "whispr-paywall:paywall_reconciliation_diff_detected"
    assert "CRITICAL" in calls[1]["json"]["text"]


def test_resolve_alert_route_applies_policy_override() -> None:
    route = alerts.resolve_alert_route(
        event="paywall_anomaly_review_required",
        policy_raw='{"paywall_anomaly_review_required":{"channels":["slack","sms"],"severity":"critical"}}',
    )
    assert route == alerts.AlertRoute(channels=("slack",), severity="critical")


def test_resolve_alert_route_ignores_malformed_policy() -> None:
    route = alerts.resolve_alert_route(event="paywall_reconciliation_diff_detected", policy_raw="{not json")
    assert route == alerts.EVENT_ALERT_ROUTES["paywall_reconciliation_diff_detected"]


def test_resolve_targets_falls_back_to_generic_webhook() -> None:
    targets = alerts.resolve_targets(
        route=alerts.AlertRoute(channels=("pagerduty",), severity="critical"),
        settings=_settings(ops_alert_webhook_url="https://ops.example.local/hook"),
    )
    assert targets == [("generic", "https://ops.example.local/hook")]


def test_build_alert_body_for_generic_channel() -> None:
    sent_at = datetime(2026, 3, 1, tzinfo=timezone.utc)
    body = alerts.build_alert_body(
        channel="generic",
        event="custom",
        payload={"a": 1},
        route=alerts.DEFAULT_ALERT_ROUTE,
        sent_at=sent_at,
        settings=_settings(),
    )
    assert body == {"event": "custom", "payload": {"a": 1}, "sent_at": sent_at.isoformat(), "severity": "warning"}


@pytest.mark.asyncio
async def test_send_ops_alert_returns_true_when_one_provider_fails(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(
        alerts,
        "get_settings",
        lambda: _settings(
            ops_alert_webhook_url="https://ops.example.local/hook",
            ops_alert_slack_webhook_url="https://slack.example.local/hook",
        ),
    )
    _patch_http_client(monkeypatch, calls, fail_urls={"https://slack.example.local/hook"})

    sent = await alerts.send_ops_alert(event="paywall_reconciliation_diff_detected", payload={"diff_count": 1})

    assert sent is True
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_send_ops_alert_returns_false_when_every_provider_fails(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(
        alerts,
        "get_settings",
        lambda: _settings(ops_alert_webhook_url="https://ops.example.local/hook"),
    )
    _patch_http_client(monkeypatch, calls, fail_urls={"https://ops.example.local/hook"})

    sent = await alerts.send_ops_alert(event="paywall_anomaly_review_required", payload={})

    assert sent is False
