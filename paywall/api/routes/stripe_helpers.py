from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse

from paywall.billing.errors import (
    AuthenticationError,
    BillingError,
    CheckoutInFlightError,
    ConfigurationError,
    ProviderError,
    ValidationError,
)
from paywall.billing.types import AuthenticatedUser, EntitlementSnapshot
from paywall.services.user_auth import get_authenticated_user

BILLING_ERROR_STATUS: tuple[tuple[type[BillingError], int], ...] = (
    (AuthenticationError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (CheckoutInFlightError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (ProviderError, status.HTTP_502_BAD_GATEWAY),
)


def billing_error_response(exc: BillingError) -> JSONResponse:
    for error_type, status_code in BILLING_ERROR_STATUS:
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content={"error": str(exc)})
    return internal_error_response()


def request_user(request: Request) -> AuthenticatedUser | None:
    return get_authenticated_user(request.headers.get("Authorization"))


def request_origin(request: Request) -> str:
    origin = request.headers.get("Origin")
    if origin:
        return origin.rstrip("/")
    return str(request.base_url).rstrip("/")


def snapshot_content(snapshot: EntitlementSnapshot) -> dict[str, object]:
    return {
        "hasPlus": snapshot.has_plus,
        "plusStatus": snapshot.plus_status,
        "plusCurrentPeriodEnd": (
            snapshot.plus_current_period_end.isoformat() if snapshot.plus_current_period_end else None
        ),
        "unlocks": [
            {
                "type": unlock.unlock_type,
                "characterId": unlock.character_id,
                "situationId": unlock.situation_id,
                "momentLevel": unlock.moment_level,
                "mediaId": unlock.media_id,
            }
            for unlock in snapshot.unlocks
        ],
    }


def internal_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal error"},
    )


def unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Entitlements temporarily unavailable"},
    )
