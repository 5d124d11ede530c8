from __future__ import annotations

import structlog

from paywall.billing.types import AuthenticatedUser
from paywall.db.repo.entitlements_repo import EntitlementsRepo
from paywall.db.session import SessionLocal
from paywall.services.stripe_gateway import StripeGateway

logger = structlog.get_logger(__name__)


async def ensure_provider_customer(*, user: AuthenticatedUser, gateway: StripeGateway) -> str:
    async with SessionLocal() as session:
        cached_customer_id = await EntitlementsRepo.get_customer_id(session, user_id=user.user_id)
    if cached_customer_id:
        return cached_customer_id

    # The idempotency key collapses concurrent creations into one Stripe customer.
    created_customer_id = await gateway.create_customer(user_id=user.user_id, email=user.email)

    async with SessionLocal.begin() as session:
        stored_customer_id = await EntitlementsRepo.ensure_customer_id(
            session,
            user_id=user.user_id,
            customer_id=created_customer_id,
        )

    if stored_customer_id != created_customer_id:
        logger.warning(
            "stripe_customer_race_lost",
            user_id=user.user_id,
            stored_customer_id=stored_customer_id,
            discarded_customer_id=created_customer_id,
        )
    else:
        logger.info("stripe_customer_created", user_id=user.user_id, customer_id=created_customer_id)
    return stored_customer_id
