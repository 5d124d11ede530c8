from __future__ import annotations

from fastapi.testclient import TestClient

from paywall.api.routes import stripe_webhook
from paywall.main import app
from tests.billing.fakes import FakeGateway, checkout_completed, install_fake_storage, sign_payload

METADATA = {
    "userId": "user-1",
    "purchaseType": "moment",
    "characterId": "luna",
    "situationId": "rooftop",
    "momentLevel": "intimate",
}


def _client(monkeypatch) -> TestClient:
    monkeypatch.setattr(stripe_webhook, "get_stripe_gateway", lambda: FakeGateway())
    return TestClient(app)


def test_webhook_applies_signed_event(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    client = _client(monkeypatch)
    body = checkout_completed("evt_1", metadata=METADATA)

    response = client.post("/api/stripe/webhook", content=body, headers={"Stripe-Signature": sign_payload(body)})
    replay = client.post("/api/stripe/webhook", content=body, headers={"Stripe-Signature": sign_payload(body)})

    assert response.status_code == 200
    assert response.json() == {"received": True, "status": "applied"}
    assert replay.status_code == 200
    assert replay.json() == {"received": True, "status": "duplicate"}
    assert len(store.unlocks) == 1


def test_webhook_rejects_bad_signature_with_400(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    client = _client(monkeypatch)
    body = checkout_completed("evt_1", metadata=METADATA)

    response = client.post(
        "/api/stripe/webhook",
        content=body,
        headers={"Stripe-Signature": sign_payload(body, secret="whsec_other")},
    )
    missing = client.post("/api/stripe/webhook", content=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}
    assert missing.status_code == 400
    assert store.processed_events == {}


def test_webhook_acknowledges_anomaly_with_200(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    client = _client(monkeypatch)
    body = checkout_completed("evt_anon", metadata={"purchaseType": "plus"})

    response = client.post("/api/stripe/webhook", content=body, headers={"Stripe-Signature": sign_payload(body)})

    assert response.status_code == 200
    assert response.json()["status"] == "anomaly"
    assert store.processed_events["evt_anon"].outcome == "ANOMALY"


def test_webhook_returns_500_and_keeps_no_ledger_row_when_handler_fails(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    store.fail_on_dispatch = True
    client = _client(monkeypatch)
    body = checkout_completed("evt_1", metadata=METADATA)

    response = client.post("/api/stripe/webhook", content=body, headers={"Stripe-Signature": sign_payload(body)})

    assert response.status_code == 500
    assert response.json() == {"error": "Handler failed"}
    assert store.processed_events == {}
    assert store.purchase_records == {}
