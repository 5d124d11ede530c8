from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from paywall.billing.errors import BillingError
from paywall.core.config import get_settings
from paywall.db.repo.entitlements_repo import EntitlementsRepo
from paywall.db.session import SessionLocal
from paywall.services.stripe_gateway import get_stripe_gateway

from .stripe_helpers import billing_error_response, internal_error_response, request_origin, request_user

router = APIRouter(tags=["stripe"])
logger = structlog.get_logger(__name__)


@router.post("/api/stripe/portal")
async def billing_portal(request: Request) -> JSONResponse:
    user = request_user(request)
    if user is None:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})

    try:
        async with SessionLocal() as session:
            customer_id = await EntitlementsRepo.get_customer_id(session, user_id=user.user_id)
    except Exception:
        logger.exception("billing_portal_lookup_failed", user_id=user.user_id)
        return internal_error_response()
    if not customer_id:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "No billing account"})

    return_url = (get_settings().stripe_customer_portal_return_url or "").strip()
    if not return_url:
        return_url = f"{request_origin(request)}/profile"

    try:
        url = await get_stripe_gateway().create_portal_session(customer_id=customer_id, return_url=return_url)
    except BillingError as exc:
        logger.warning("billing_portal_failed", user_id=user.user_id, error_type=type(exc).__name__)
        return billing_error_response(exc)

    return JSONResponse(status_code=status.HTTP_200_OK, content={"url": url})
