from __future__ import annotations

import secrets
from dataclasses import dataclass

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from paywall.billing.errors import CheckoutInFlightError
from paywall.core.config import get_settings

logger = structlog.get_logger(__name__)

LEASE_KEY_PREFIX = "checkout_lease"
RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


@dataclass(frozen=True, slots=True)
class CheckoutLease:
    key: str
    token: str


def lease_key(*, user_id: str, client_session: str | None) -> str:
    scope = (client_session or "").strip()[:64] or "default"
    return f"{LEASE_KEY_PREFIX}:{user_id}:{scope}"


def _redis_client() -> Redis:
    return Redis.from_url(get_settings().redis_url)


async def acquire_checkout_lease(
    *,
    user_id: str,
    client_session: str | None,
    ttl_ms: int,
) -> CheckoutLease | None:
    """Take the per-user checkout lease or raise CheckoutInFlightError.

    Returns None when Redis is unreachable: the lease only suppresses double
    clicks and checkout proceeds without it.
    """
    key = lease_key(user_id=user_id, client_session=client_session)
    token = secrets.token_hex(8)
    redis_client = _redis_client()
    try:
        acquired = await redis_client.set(key, token, nx=True, px=max(1, int(ttl_ms)))
    except (RedisError, OSError) as exc:
        logger.warning("checkout_lease_unavailable", user_id=user_id, error_type=type(exc).__name__)
        return None
    finally:
        await redis_client.aclose()

    if not acquired:
        logger.info("checkout_lease_busy", user_id=user_id)
        raise CheckoutInFlightError("A checkout is already in progress")
    return CheckoutLease(key=key, token=token)


async def release_checkout_lease(lease: CheckoutLease | None) -> None:
    if lease is None:
        return

    redis_client = _redis_client()
    try:
        await redis_client.eval(RELEASE_SCRIPT, 1, lease.key, lease.token)
    except (RedisError, OSError) as exc:
        # The lease expires on its own after ttl_ms.
        logger.warning("checkout_lease_release_failed", lease_key=lease.key, error_type=type(exc).__name__)
    finally:
        await redis_client.aclose()
