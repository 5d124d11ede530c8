from __future__ import annotations

import jwt
import structlog

from paywall.billing.types import AuthenticatedUser
from paywall.core.config import get_settings

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    if not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def decode_user_token(token: str, *, secret: str, audience: str) -> AuthenticatedUser | None:
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience or None,
            options={"require": ["sub", "exp"], "verify_aud": bool(audience)},
        )
    except jwt.PyJWTError as exc:
        logger.info("user_token_rejected", error_type=type(exc).__name__)
        return None

    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        return None
    email = claims.get("email")
    return AuthenticatedUser(user_id=user_id, email=email if isinstance(email, str) else None)


def get_authenticated_user(authorization: str | None) -> AuthenticatedUser | None:
    """Resolve the caller from a Supabase-style access token; None when anonymous."""
    token = extract_bearer_token(authorization)
    if token is None:
        return None

    settings = get_settings()
    secret = (settings.auth_jwt_secret or "").strip()
    if not secret:
        logger.error("user_token_secret_missing")
        return None
    return decode_user_token(token, secret=secret, audience=settings.auth_jwt_audience)
