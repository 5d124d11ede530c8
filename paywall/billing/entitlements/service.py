from __future__ import annotations

import asyncio

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from paywall.billing.types import EntitlementSnapshot, UnlockCheck, UnlockView
from paywall.db.repo.entitlements_repo import EntitlementsRepo
from paywall.db.repo.unlocks_repo import UnlocksRepo
from paywall.db.session import SessionLocal

logger = structlog.get_logger(__name__)

REASON_PLUS = "plus"
REASON_PURCHASED = "purchased"
REASON_NONE = "none"
LOCKED = UnlockCheck(is_unlocked=False, reason=REASON_NONE)


async def get_entitlements(session: AsyncSession, *, user_id: str) -> EntitlementSnapshot:
    entitlement = await EntitlementsRepo.get_by_user_id(session, user_id=user_id)
    unlocks = await UnlocksRepo.list_for_user(session, user_id=user_id)
    views = [
        UnlockView(
            unlock_type=unlock.unlock_type,
            character_id=unlock.character_id,
            situation_id=unlock.situation_id,
            moment_level=unlock.moment_level,
            media_id=unlock.media_id,
        )
        for unlock in unlocks
    ]
    if entitlement is None:
        return EntitlementSnapshot(
            user_id=user_id,
            has_plus=False,
            plus_status="none",
            plus_current_period_end=None,
            provider_customer_id=None,
            unlocks=views,
        )
    return EntitlementSnapshot(
        user_id=user_id,
        has_plus=bool(entitlement.has_plus),
        plus_status=entitlement.plus_status,
        plus_current_period_end=entitlement.plus_current_period_end,
        provider_customer_id=entitlement.provider_customer_id,
        unlocks=views,
    )


async def get_entitlements_bounded(*, user_id: str, timeout_seconds: float = 2.0) -> EntitlementSnapshot:
    """Read the snapshot in its own session; raises ``TimeoutError`` past the bound."""

    async def _read() -> EntitlementSnapshot:
        async with SessionLocal() as session:
            return await get_entitlements(session, user_id=user_id)

    return await asyncio.wait_for(_read(), timeout=timeout_seconds)


async def check_moment_unlock(
    session: AsyncSession,
    *,
    user_id: str | None,
    character_id: str,
    situation_id: str,
    moment_level: str,
) -> UnlockCheck:
    if not user_id:
        return LOCKED

    # Plus covers private and intimate moments; exclusive ones are always bought.
    if moment_level != "exclusive":
        entitlement = await EntitlementsRepo.get_by_user_id(session, user_id=user_id)
        if entitlement is not None and entitlement.has_plus and entitlement.plus_status == "active":
            return UnlockCheck(is_unlocked=True, reason=REASON_PLUS)

    purchased = await UnlocksRepo.has_moment_unlock(
        session,
        user_id=user_id,
        character_id=character_id,
        situation_id=situation_id,
        moment_level=moment_level,
    )
    if purchased:
        return UnlockCheck(is_unlocked=True, reason=REASON_PURCHASED)
    return LOCKED


async def check_media_unlock(
    session: AsyncSession,
    *,
    user_id: str | None,
    character_id: str,
    media_id: str,
) -> UnlockCheck:
    if not user_id:
        return LOCKED

    purchased = await UnlocksRepo.has_media_unlock(
        session,
        user_id=user_id,
        character_id=character_id,
        media_id=media_id,
    )
    if purchased:
        return UnlockCheck(is_unlocked=True, reason=REASON_PURCHASED)
    return LOCKED


async def _checked_in_fresh_session(check, **kwargs) -> UnlockCheck:
    async with SessionLocal() as session:
        return await check(session, **kwargs)


async def check_unlock_fail_closed(
    *,
    user_id: str | None,
    character_id: str,
    situation_id: str | None = None,
    moment_level: str | None = None,
    media_id: str | None = None,
    timeout_seconds: float = 2.0,
) -> UnlockCheck:
    """Answer an unlock check, reporting locked on timeout or storage failure."""
    if not user_id:
        return LOCKED

    if media_id is not None:
        check = check_media_unlock
        kwargs: dict[str, object] = {
            "user_id": user_id,
            "character_id": character_id,
            "media_id": media_id,
        }
    else:
        check = check_moment_unlock
        kwargs = {
            "user_id": user_id,
            "character_id": character_id,
            "situation_id": situation_id,
            "moment_level": moment_level,
        }

    try:
        return await asyncio.wait_for(
            _checked_in_fresh_session(check, **kwargs),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning("unlock_check_timeout", user_id=user_id, timeout_seconds=timeout_seconds)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("unlock_check_failed", user_id=user_id, error_type=type(exc).__name__)
    return LOCKED
