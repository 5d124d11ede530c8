from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from paywall.billing.catalog import MOMENT_LEVELS
from paywall.billing.entitlements import EntitlementService
from paywall.core.config import get_settings

from .stripe_helpers import internal_error_response, request_user, snapshot_content, unavailable_response
from .stripe_models import UnlockCheckRequest

router = APIRouter(tags=["stripe"])
logger = structlog.get_logger(__name__)


def _query_timeout_seconds() -> float:
    return float(getattr(get_settings(), "entitlement_query_timeout_seconds", 2.0))


@router.get("/api/stripe/entitlements")
async def get_entitlements(request: Request) -> JSONResponse:
    user = request_user(request)
    if user is None:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "authenticated": False,
                "hasPlus": False,
                "plusStatus": "none",
                "plusCurrentPeriodEnd": None,
                "unlocks": [],
            },
        )

    timeout_seconds = _query_timeout_seconds()
    try:
        snapshot = await EntitlementService.get_entitlements_bounded(
            user_id=user.user_id,
            timeout_seconds=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning("entitlements_query_timeout", user_id=user.user_id, timeout_seconds=timeout_seconds)
        return unavailable_response()
    except Exception:
        logger.exception("entitlements_query_failed", user_id=user.user_id)
        return internal_error_response()

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"authenticated": True, **snapshot_content(snapshot)},
    )


@router.post("/api/stripe/entitlements")
async def check_unlock(payload: UnlockCheckRequest, request: Request) -> JSONResponse:
    if payload.media_id is None:
        if payload.situation_id is None or payload.moment_level not in MOMENT_LEVELS:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "Provide situationId and momentLevel, or mediaId"},
            )

    user = request_user(request)
    result = await EntitlementService.check_unlock_fail_closed(
        user_id=user.user_id if user is not None else None,
        character_id=payload.character_id,
        situation_id=payload.situation_id,
        moment_level=payload.moment_level,
        media_id=payload.media_id,
        timeout_seconds=_query_timeout_seconds(),
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"isUnlocked": result.is_unlocked, "reason": result.reason},
    )
