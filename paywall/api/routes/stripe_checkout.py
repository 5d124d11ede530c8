from __future__ import annotations

from uuid import uuid4

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from paywall.billing.checkout import CheckoutService
from paywall.billing.errors import BillingError
from paywall.core.config import get_settings
from paywall.services.stripe_gateway import get_stripe_gateway

from .stripe_helpers import billing_error_response, internal_error_response, request_origin, request_user
from .stripe_models import CheckoutRequest

router = APIRouter(tags=["stripe"])
logger = structlog.get_logger(__name__)


@router.post("/api/stripe/checkout")
async def stripe_checkout(payload: CheckoutRequest, request: Request) -> JSONResponse:
    user = request_user(request)
    if user is None:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"error": "Unauthorized"})

    settings = get_settings()
    with structlog.contextvars.bound_contextvars(request_id=uuid4().hex, user_id=user.user_id):
        try:
            intent = CheckoutService.normalize_purchase_intent(
                price_ref=payload.price_ref,
                purchase_type=payload.purchase_type,
                character_id=payload.character_id,
                situation_id=payload.situation_id,
                moment_level=payload.moment_level,
                media_id=payload.media_id,
                metadata=payload.metadata,
                settings=settings,
            )
            result = await CheckoutService.create_checkout_session(
                user=user,
                intent=intent,
                gateway=get_stripe_gateway(),
                settings=settings,
                origin=request_origin(request),
                client_session=request.headers.get("X-Client-Session"),
            )
        except BillingError as exc:
            logger.warning("checkout_session_rejected", error_type=type(exc).__name__, reason=str(exc))
            return billing_error_response(exc)
        except Exception:
            logger.exception("checkout_session_failed")
            return internal_error_response()

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"url": result.url, "sessionId": result.session_id},
    )
