from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

from fastapi.testclient import TestClient

from paywall.api.routes import stripe_entitlements
from paywall.billing.entitlements import service as entitlements_service
from paywall.main import app
from tests.api.helpers import UnreachableEntitlementsRepo, auth_header
from tests.billing.fakes import FakeEntitlementsRepo, install_fake_storage, new_entitlement


def _seed_plus(store, user_id: str) -> None:
    row = new_entitlement(user_id)
    row.has_plus = True
    row.plus_status = "active"
    row.plus_current_period_end = datetime(2026, 4, 1, tzinfo=timezone.utc)
    store.entitlements[user_id] = row


def test_anonymous_entitlements_are_empty(monkeypatch) -> None:
    install_fake_storage(monkeypatch)

    response = TestClient(app).get("/api/stripe/entitlements")

    assert response.status_code == 200
    assert response.json() == {
        "authenticated": False,
        "hasPlus": False,
        "plusStatus": "none",
        "plusCurrentPeriodEnd": None,
        "unlocks": [],
    }


def test_authenticated_entitlements_snapshot(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    _seed_plus(store, "user-1")

    response = TestClient(app).get("/api/stripe/entitlements", headers=auth_header("user-1"))

    assert response.status_code == 200
    payload = response.json()
    assert payload["authenticated"] is True
    assert payload["hasPlus"] is True
    assert payload["plusCurrentPeriodEnd"] == "2026-04-01T00:00:00+00:00"


def test_unlock_check_reports_plus_reason(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    _seed_plus(store, "user-1")

    response = TestClient(app).post(
        "/api/stripe/entitlements",
        json={"characterId": "luna", "situationId": "rooftop", "momentLevel": "private"},
        headers=auth_header("user-1"),
    )

    assert response.status_code == 200
    assert response.json() == {"isUnlocked": True, "reason": "plus"}


def test_unlock_check_for_anonymous_caller_is_locked(monkeypatch) -> None:
    install_fake_storage(monkeypatch)

    response = TestClient(app).post(
        "/api/stripe/entitlements",
        json={"characterId": "luna", "mediaId": "photo-7"},
    )

    assert response.status_code == 200
    assert response.json() == {"isUnlocked": False, "reason": "none"}


def test_unlock_check_rejects_request_without_target(monkeypatch) -> None:
    install_fake_storage(monkeypatch)

    response = TestClient(app).post(
        "/api/stripe/entitlements",
        json={"characterId": "luna", "situationId": "rooftop"},
        headers=auth_header("user-1"),
    )

    assert response.status_code == 400


def test_entitlements_storage_failure_returns_json_error(monkeypatch) -> None:
    install_fake_storage(monkeypatch)
    monkeypatch.setattr(entitlements_service, "EntitlementsRepo", UnreachableEntitlementsRepo)

    response = TestClient(app).get("/api/stripe/entitlements", headers=auth_header("user-1"))

    assert response.status_code == 500
    assert response.json() == {"error": "Internal error"}


def test_slow_entitlements_query_is_bounded(monkeypatch) -> None:
    install_fake_storage(monkeypatch)

    class SlowEntitlementsRepo(FakeEntitlementsRepo):
        @staticmethod
        async def get_by_user_id(session, *, user_id: str):
            await asyncio.sleep(1.0)

    monkeypatch.setattr(entitlements_service, "EntitlementsRepo", SlowEntitlementsRepo)
    monkeypatch.setattr(
        stripe_entitlements,
        "get_settings",
        lambda: SimpleNamespace(entitlement_query_timeout_seconds=0.05),
    )

    response = TestClient(app).get("/api/stripe/entitlements", headers=auth_header("user-1"))

    assert response.status_code == 503
    assert "error" in response.json()
