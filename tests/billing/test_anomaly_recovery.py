from __future__ import annotations

import pytest

from paywall.billing.webhooks import MAX_ANOMALY_RECOVERY_ATTEMPTS, WebhookService
from paywall.billing.webhooks.anomalies import RECOVERY_ATTEMPTS_KEY
from tests.billing.fakes import (
    FakeEntitlementsRepo,
    FakeGateway,
    FakeSessionLocal,
    checkout_completed,
    install_fake_storage,
    sign_payload,
    subscription_event,
)


def test_increment_recovery_attempts_initializes_counter() -> None:
    payload, attempts = WebhookService.increment_recovery_attempts(None)
    assert attempts == 1
    assert payload[RECOVERY_ATTEMPTS_KEY] == 1


def test_increment_recovery_attempts_keeps_other_detail() -> None:
    payload, attempts = WebhookService.increment_recovery_attempts(
        {"customer_id": "cus_1", RECOVERY_ATTEMPTS_KEY: MAX_ANOMALY_RECOVERY_ATTEMPTS - 1}
    )
    assert attempts == MAX_ANOMALY_RECOVERY_ATTEMPTS
    assert payload["customer_id"] == "cus_1"


def test_increment_recovery_attempts_handles_invalid_counter_value() -> None:
    payload, attempts = WebhookService.increment_recovery_attempts({RECOVERY_ATTEMPTS_KEY: "bad"})
    assert attempts == 1
    assert payload[RECOVERY_ATTEMPTS_KEY] == 1


async def _deliver(body: bytes) -> str:
    result = await WebhookService.process_webhook(
        raw_body=body,
        signature_header=sign_payload(body),
        gateway=FakeGateway(),
    )
    return result.status


async def _recover(store, provider_event_id: str) -> str:
    async with FakeSessionLocal(store).begin() as session:
        return await WebhookService.recover_anomaly(session, provider_event_id=provider_event_id)


async def _record_orphan_update(status: str = "active") -> str:
    body = subscription_event("evt_orphan", "customer.subscription.updated", customer="cus_late", status=status)
    return await _deliver(body)


async def _link_customer(store, *, user_id: str, customer_id: str) -> None:
    async with FakeSessionLocal(store).begin() as session:
        await FakeEntitlementsRepo.ensure_customer_id(session, user_id=user_id, customer_id=customer_id)


@pytest.mark.asyncio
async def test_anomaly_is_reapplied_once_customer_is_known(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    assert await _record_orphan_update() == "anomaly"

    await _link_customer(store, user_id="user-1", customer_id="cus_late")
    outcome = await _recover(store, "evt_orphan")

    assert outcome == "recovered"
    entitlement = store.entitlement("user-1")
    assert (entitlement.has_plus, entitlement.plus_status) == (True, "active")
    assert entitlement.provider_subscription_id == "sub_1"
    assert store.processed_events["evt_orphan"].outcome == "RECOVERED"


@pytest.mark.asyncio
async def test_anomaly_is_superseded_by_later_plan_write(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    assert await _record_orphan_update(status="past_due") == "anomaly"

    body = checkout_completed(
        "evt_plus",
        metadata={"userId": "user-1", "purchaseType": "plus"},
        mode="subscription",
        customer="cus_late",
        subscription="sub_1",
    )
    assert await _deliver(body) == "applied"

    outcome = await _recover(store, "evt_orphan")

    assert outcome == "superseded"
    row = store.processed_events["evt_orphan"]
    assert row.outcome == "RECOVERED"
    assert row.detail["superseded"] is True
    assert store.entitlement("user-1").plus_status == "active"


@pytest.mark.asyncio
async def test_anomaly_for_other_subscription_is_closed_without_plan_write(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    assert await _record_orphan_update(status="canceled") == "anomaly"

    await _link_customer(store, user_id="user-1", customer_id="cus_late")
    entitlement = store.entitlement("user-1")
    entitlement.has_plus = True
    entitlement.plus_status = "active"
    entitlement.provider_subscription_id = "sub_2"

    outcome = await _recover(store, "evt_orphan")

    assert outcome == "superseded"
    row = store.processed_events["evt_orphan"]
    assert row.outcome == "RECOVERED"
    assert row.detail["current_subscription_id"] == "sub_2"
    assert (entitlement.has_plus, entitlement.plus_status) == (True, "active")


@pytest.mark.asyncio
async def test_unresolved_anomaly_goes_to_review_after_max_attempts(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    await _record_orphan_update()

    outcomes = [await _recover(store, "evt_orphan") for _ in range(MAX_ANOMALY_RECOVERY_ATTEMPTS)]

    assert outcomes == ["retryable_failure"] * (MAX_ANOMALY_RECOVERY_ATTEMPTS - 1) + ["review"]
    row = store.processed_events["evt_orphan"]
    assert row.outcome == "PENDING_REVIEW"
    assert row.detail[RECOVERY_ATTEMPTS_KEY] == MAX_ANOMALY_RECOVERY_ATTEMPTS
    assert await _recover(store, "evt_orphan") == "skipped"


@pytest.mark.asyncio
async def test_anomaly_without_customer_key_goes_straight_to_review(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    await _deliver(checkout_completed("evt_no_user", metadata={"purchaseType": "media"}))

    assert await _recover(store, "evt_no_user") == "review"
    assert store.processed_events["evt_no_user"].outcome == "PENDING_REVIEW"


@pytest.mark.asyncio
async def test_recover_reports_missing_and_applied_rows(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    await _deliver(checkout_completed("evt_ok", metadata={"userId": "user-1", "purchaseType": "plus"}))

    assert await _recover(store, "evt_unknown") == "missing"
    assert await _recover(store, "evt_ok") == "skipped"
