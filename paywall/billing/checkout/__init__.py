from __future__ import annotations

from .customers import ensure_provider_customer
from .init import build_return_urls, create_checkout_session, resolve_app_url
from .intents import build_checkout_metadata, normalize_purchase_intent


class CheckoutService:
    normalize_purchase_intent = staticmethod(normalize_purchase_intent)
    build_checkout_metadata = staticmethod(build_checkout_metadata)
    ensure_provider_customer = staticmethod(ensure_provider_customer)
    resolve_app_url = staticmethod(resolve_app_url)
    build_return_urls = staticmethod(build_return_urls)
    create_checkout_session = staticmethod(create_checkout_session)


__all__ = ["CheckoutService"]
