from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from paywall.billing.entitlements import REASON_NONE, REASON_PLUS, REASON_PURCHASED, EntitlementService
from paywall.billing.entitlements import service as entitlements_service
from tests.billing.fakes import FakeSessionLocal, MemoryStore, new_entitlement, install_fake_storage


def _give_plus(store: MemoryStore, user_id: str, *, status: str = "active") -> None:
    row = new_entitlement(user_id)
    row.has_plus = status == "active"
    row.plus_status = status
    store.entitlements[user_id] = row


async def _unlock_moment(store: MemoryStore, level: str) -> None:
    async with FakeSessionLocal(store).begin() as session:
        await entitlements_service.UnlocksRepo.insert_moment_if_absent(
            session,
            user_id="user-1",
            character_id="luna",
            situation_id="rooftop",
            moment_level=level,
            source_event_id="evt_1",
        )


async def _check(level: str, user_id: str | None = "user-1"):
    return await EntitlementService.check_unlock_fail_closed(
        user_id=user_id,
        character_id="luna",
        situation_id="rooftop",
        moment_level=level,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("level", ["private", "intimate"])
async def test_active_plus_covers_non_exclusive_moments(monkeypatch, level: str) -> None:
    store = install_fake_storage(monkeypatch)
    _give_plus(store, "user-1")

    result = await _check(level)

    assert (result.is_unlocked, result.reason) == (True, REASON_PLUS)


@pytest.mark.asyncio
async def test_plus_never_covers_exclusive_moments(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    _give_plus(store, "user-1")

    assert (await _check("exclusive")).is_unlocked is False

    await _unlock_moment(store, "exclusive")
    result = await _check("exclusive")
    assert (result.is_unlocked, result.reason) == (True, REASON_PURCHASED)


@pytest.mark.asyncio
async def test_past_due_plus_falls_back_to_purchases(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    _give_plus(store, "user-1", status="past_due")

    assert (await _check("private")).reason == REASON_NONE

    await _unlock_moment(store, "private")
    assert (await _check("private")).reason == REASON_PURCHASED


@pytest.mark.asyncio
async def test_unlock_is_exact_on_level(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    await _unlock_moment(store, "intimate")

    assert (await _check("intimate")).is_unlocked is True
    assert (await _check("private")).is_unlocked is False


@pytest.mark.asyncio
async def test_anonymous_caller_is_locked(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    _give_plus(store, "user-1")

    result = await _check("private", user_id=None)

    assert (result.is_unlocked, result.reason) == (False, REASON_NONE)


@pytest.mark.asyncio
async def test_media_unlock_ignores_plus(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    _give_plus(store, "user-1")

    locked = await EntitlementService.check_unlock_fail_closed(
        user_id="user-1",
        character_id="luna",
        media_id="photo-7",
    )
    async with FakeSessionLocal(store).begin() as session:
        await entitlements_service.UnlocksRepo.insert_media_if_absent(
            session,
            user_id="user-1",
            character_id="luna",
            media_id="photo-7",
            source_event_id="evt_media",
        )
    unlocked = await EntitlementService.check_unlock_fail_closed(
        user_id="user-1",
        character_id="luna",
        media_id="photo-7",
    )

    assert locked.is_unlocked is False
    assert (unlocked.is_unlocked, unlocked.reason) == (True, REASON_PURCHASED)


@pytest.mark.asyncio
async def test_storage_failure_reports_locked(monkeypatch) -> None:
    async def _broken(check, **kwargs):
        raise OperationalError("SELECT 1", {}, OSError("connection refused"))

    monkeypatch.setattr(entitlements_service, "_checked_in_fresh_session", _broken)

    result = await _check("private")

    assert (result.is_unlocked, result.reason) == (False, REASON_NONE)


@pytest.mark.asyncio
async def test_slow_storage_reports_locked(monkeypatch) -> None:
    async def _slow(check, **kwargs):
        await asyncio.sleep(1)

    monkeypatch.setattr(entitlements_service, "_checked_in_fresh_session", _slow)

    result = await EntitlementService.check_unlock_fail_closed(
        user_id="user-1",
        character_id="luna",
        situation_id="rooftop",
        moment_level="private",
        timeout_seconds=0.01,
    )

    assert result.is_unlocked is False


@pytest.mark.asyncio
async def test_get_entitlements_snapshot_for_new_user(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)

    async with FakeSessionLocal(store)() as session:
        snapshot = await EntitlementService.get_entitlements(session, user_id="user-9")

    assert snapshot.has_plus is False
    assert snapshot.plus_status == "none"
    assert snapshot.unlocks == []


@pytest.mark.asyncio
async def test_get_entitlements_snapshot_lists_unlocks(monkeypatch) -> None:
    store = install_fake_storage(monkeypatch)
    _give_plus(store, "user-1")
    await _unlock_moment(store, "exclusive")

    async with FakeSessionLocal(store)() as session:
        snapshot = await EntitlementService.get_entitlements(session, user_id="user-1")

    assert snapshot.has_plus is True
    assert [(unlock.unlock_type, unlock.moment_level) for unlock in snapshot.unlocks] == [("moment", "exclusive")]
