from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from paywall.billing.entitlements import EntitlementService
from paywall.billing.errors import BillingError
from paywall.core.config import get_settings
from paywall.services.stripe_gateway import get_stripe_gateway

from .stripe_helpers import (
    billing_error_response,
    internal_error_response,
    request_user,
    snapshot_content,
    unavailable_response,
)

router = APIRouter(tags=["stripe"])
logger = structlog.get_logger(__name__)


@router.get("/api/stripe/verify")
async def verify_checkout(request: Request) -> JSONResponse:
    session_id = request.query_params.get("sessionId") or request.query_params.get("session_id")
    if not session_id:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Missing sessionId"})

    try:
        checkout_session = await get_stripe_gateway().retrieve_checkout_session(session_id)
    except BillingError as exc:
        logger.warning("checkout_verify_failed", checkout_session_id=session_id, error_type=type(exc).__name__)
        return billing_error_response(exc)

    if not checkout_session.is_paid:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "incomplete", "paymentStatus": checkout_session.payment_status},
        )

    entitlements = None
    user = request_user(request)
    if user is not None and user.user_id == checkout_session.metadata.get("userId"):
        try:
            snapshot = await EntitlementService.get_entitlements_bounded(
                user_id=user.user_id,
                timeout_seconds=float(getattr(get_settings(), "entitlement_query_timeout_seconds", 2.0)),
            )
        except asyncio.TimeoutError:
            logger.warning("checkout_verify_entitlements_timeout", checkout_session_id=session_id)
            return unavailable_response()
        except Exception:
            logger.exception("checkout_verify_entitlements_failed", checkout_session_id=session_id)
            return internal_error_response()
        entitlements = snapshot_content(snapshot)

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "complete",
            "paymentStatus": checkout_session.payment_status,
            "metadata": checkout_session.metadata,
            "entitlements": entitlements,
        },
    )
