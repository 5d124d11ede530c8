from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from paywall.billing.errors import AuthenticationError, ValidationError
from paywall.billing.webhooks import WebhookService
from paywall.services.stripe_gateway import get_stripe_gateway

router = APIRouter(tags=["stripe"])
logger = structlog.get_logger(__name__)


@router.post("/api/stripe/webhook")
async def stripe_webhook(request: Request) -> JSONResponse:
    raw_body = await request.body()
    try:
        result = await WebhookService.process_webhook(
            raw_body=raw_body,
            signature_header=request.headers.get("Stripe-Signature"),
            gateway=get_stripe_gateway(),
        )
    except AuthenticationError as exc:
        logger.warning("stripe_webhook_signature_invalid", reason=str(exc))
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})
    except ValidationError as exc:
        logger.warning("stripe_webhook_invalid_payload", reason=str(exc))
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})
    except Exception:
        # Non-2xx makes Stripe redeliver; nothing was committed for this event.
        logger.exception("stripe_webhook_handler_failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Handler failed"},
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"received": True, "status": result.status},
    )
