from __future__ import annotations

import structlog

from paywall.billing.catalog import resolve_price_ref
from paywall.billing.errors import ProviderError
from paywall.billing.types import AuthenticatedUser, CheckoutSessionResult, PurchaseIntent
from paywall.services.checkout_leases import acquire_checkout_lease, release_checkout_lease
from paywall.services.stripe_gateway import StripeGateway

from .customers import ensure_provider_customer
from .intents import build_checkout_metadata

logger = structlog.get_logger(__name__)

SUCCESS_PATH = "/pay/success?session_id={CHECKOUT_SESSION_ID}"
CANCEL_PATH = "/pay/cancel"


def resolve_app_url(*, configured_app_url: str, origin: str | None) -> str:
    app_url = (configured_app_url or "").strip() or (origin or "").strip()
    if not app_url:
        return "http://localhost:3000"
    if not app_url.startswith(("http://", "https://")):
        app_url = f"https://{app_url}"
    return app_url.rstrip("/")


def build_return_urls(app_url: str) -> tuple[str, str]:
    return f"{app_url}{SUCCESS_PATH}", f"{app_url}{CANCEL_PATH}"


async def create_checkout_session(
    *,
    user: AuthenticatedUser,
    intent: PurchaseIntent,
    gateway: StripeGateway,
    settings: object,
    origin: str | None = None,
    client_session: str | None = None,
) -> CheckoutSessionResult:
    price_ref = resolve_price_ref(intent.product, settings)
    lease = await acquire_checkout_lease(
        user_id=user.user_id,
        client_session=client_session,
        ttl_ms=int(getattr(settings, "checkout_lease_ttl_ms", 3000)),
    )
    try:
        customer_id = await ensure_provider_customer(user=user, gateway=gateway)
        success_url, cancel_url = build_return_urls(
            resolve_app_url(configured_app_url=getattr(settings, "app_url", ""), origin=origin)
        )
        provider_session = await gateway.create_checkout_session(
            customer_id=customer_id,
            price_ref=price_ref,
            mode=intent.mode,
            metadata=build_checkout_metadata(user_id=user.user_id, intent=intent),
            success_url=success_url,
            cancel_url=cancel_url,
        )
        if not provider_session.url:
            raise ProviderError("Stripe checkout session has no url")
    except Exception:
        await release_checkout_lease(lease)
        raise

    logger.info(
        "checkout_session_created",
        user_id=user.user_id,
        product_code=intent.product.product_code,
        mode=intent.mode,
        checkout_session_id=provider_session.session_id,
    )
    return CheckoutSessionResult(
        session_id=provider_session.session_id,
        url=provider_session.url,
        product_code=intent.product.product_code,
        mode=intent.mode,
        customer_id=customer_id,
    )
