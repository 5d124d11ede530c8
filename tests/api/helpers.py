from __future__ import annotations

import time
from types import SimpleNamespace

import jwt
from sqlalchemy.exc import OperationalError

from paywall.core.config import get_settings

PRICE_SETTINGS = SimpleNamespace(
    app_url="https://whispr.app",
    checkout_lease_ttl_ms=3000,
    stripe_price_private_moment="price_private",
    stripe_price_intimate_moment="price_intimate",
    stripe_price_exclusive_moment="price_exclusive",
    stripe_price_private_photo="price_photo",
    stripe_price_whispr_plus_monthly="price_plus",
    entitlement_query_timeout_seconds=2.0,
    stripe_customer_portal_return_url="",
)


def auth_header(user_id: str, *, email: str | None = None) -> dict[str, str]:
    settings = get_settings()
    claims: dict[str, object] = {
        "sub": user_id,
        "aud": settings.auth_jwt_audience,
        "exp": int(time.time()) + 300,
    }
    if email:
        claims["email"] = email
    token = jwt.encode(claims, settings.auth_jwt_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


class UnreachableEntitlementsRepo:
    @staticmethod
    async def get_by_user_id(session, *, user_id: str):
        raise OperationalError("SELECT entitlements", {}, OSError("connection refused"))

    @staticmethod
    async def get_customer_id(session, *, user_id: str):
        raise OperationalError("SELECT provider_customer_id", {}, OSError("connection refused"))
