from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import stripe
import structlog

from paywall.billing.errors import (
    AuthenticationError,
    ConfigurationError,
    ProviderError,
    ValidationError,
)
from paywall.core.config import get_settings

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ProviderCheckoutSession:
    session_id: str
    url: str | None
    payment_status: str | None = None
    status: str | None = None
    mode: str | None = None
    customer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        if self.payment_status == "paid":
            return True
        return self.mode == "subscription" and self.status == "complete"


def stripe_field(obj: Any, key: str) -> Any:
    """Read a key from a Stripe object or a decoded JSON dict."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return None


def stripe_id(value: Any) -> str | None:
    """Expanded objects carry the id under ``id``; collapsed ones are the id itself."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    expanded_id = stripe_field(value, "id")
    return str(expanded_id) if expanded_id else None


def metadata_dict(raw_metadata: Any) -> dict[str, str]:
    if not raw_metadata:
        return {}
    return {str(key): str(value) for key, value in raw_metadata.items() if value is not None}


def epoch_to_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def subscription_period_end(subscription: Any) -> datetime | None:
    period_end = epoch_to_datetime(stripe_field(subscription, "current_period_end"))
    if period_end is not None:
        return period_end

    # Newer API versions only expose the period on subscription items.
    items = stripe_field(stripe_field(subscription, "items"), "data") or []
    for item in items:
        period_end = epoch_to_datetime(stripe_field(item, "current_period_end"))
        if period_end is not None:
            return period_end
    return None


class StripeGateway:
    def __init__(
        self,
        *,
        api_key: str,
        webhook_secret: str,
        timeout_seconds: float = 10.0,
        webhook_tolerance_seconds: int = 300,
    ) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._timeout_seconds = timeout_seconds
        self._webhook_tolerance_seconds = webhook_tolerance_seconds

    async def _call(self, operation: str, func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
        if not self._api_key:
            raise ConfigurationError("Stripe is not configured: set STRIPE_SECRET_KEY")

        def provider_call() -> Any:
            return func(*args, api_key=self._api_key, **kwargs)

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(provider_call),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "stripe_call_timeout",
                operation=operation,
                timeout_seconds=self._timeout_seconds,
            )
            raise ProviderError(f"Stripe {operation} timed out") from exc
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_call_failed",
                operation=operation,
                error_type=type(exc).__name__,
                http_status=getattr(exc, "http_status", None),
                request_id=getattr(exc, "request_id", None),
            )
            raise ProviderError(f"Stripe {operation} failed: {exc.user_message or type(exc).__name__}") from exc

    async def create_customer(self, *, user_id: str, email: str | None) -> str:
        params: dict[str, Any] = {"metadata": {"userId": user_id}}
        if email:
            params["email"] = email
        customer = await self._call(
            "customer_create",
            stripe.Customer.create,
            idempotency_key=f"customer:{user_id}",
            **params,
        )
        customer_id = stripe_id(customer)
        if customer_id is None:
            raise ProviderError("Stripe customer_create returned no id")
        return customer_id

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_ref: str,
        mode: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> ProviderCheckoutSession:
        params: dict[str, Any] = {
            "customer": customer_id,
            "mode": mode,
            "line_items": [{"price": price_ref, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "client_reference_id": metadata.get("userId"),
            "allow_promotion_codes": True,
        }
        if mode == "subscription":
            params["subscription_data"] = {"metadata": metadata}
        else:
            params["payment_intent_data"] = {"metadata": metadata}

        checkout_session = await self._call("checkout_session_create", stripe.checkout.Session.create, **params)
        return self._as_checkout_session(checkout_session)

    async def retrieve_checkout_session(self, session_id: str) -> ProviderCheckoutSession:
        checkout_session = await self._call(
            "checkout_session_retrieve",
            stripe.checkout.Session.retrieve,
            session_id,
        )
        return self._as_checkout_session(checkout_session)

    async def get_subscription_period_end(self, subscription_id: str) -> datetime | None:
        subscription = await self._call(
            "subscription_retrieve",
            stripe.Subscription.retrieve,
            subscription_id,
        )
        return subscription_period_end(subscription)

    async def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        portal_session = await self._call(
            "billing_portal_session_create",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        url = stripe_field(portal_session, "url")
        if not url:
            raise ProviderError("Stripe billing portal returned no url")
        return str(url)

    def construct_event(self, payload: bytes, signature_header: str | None) -> dict[str, Any]:
        if not self._webhook_secret:
            logger.error("stripe_webhook_secret_missing")
            raise AuthenticationError("Webhook secret not configured")
        if not signature_header:
            raise AuthenticationError("Missing stripe-signature header")

        try:
            payload_text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError("Webhook body is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                payload_text,
                signature_header,
                self._webhook_secret,
                self._webhook_tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise AuthenticationError("Invalid signature") from exc

        try:
            event = json.loads(payload_text)
        except json.JSONDecodeError as exc:
            raise ValidationError("Webhook body is not valid JSON") from exc
        if not isinstance(event, dict):
            raise ValidationError("Webhook body is not a JSON object")
        return event

    @staticmethod
    def _as_checkout_session(checkout_session: Any) -> ProviderCheckoutSession:
        session_id = stripe_id(checkout_session)
        if session_id is None:
            raise ProviderError("Stripe checkout session has no id")
        return ProviderCheckoutSession(
            session_id=session_id,
            url=stripe_field(checkout_session, "url"),
            payment_status=stripe_field(checkout_session, "payment_status"),
            status=stripe_field(checkout_session, "status"),
            mode=stripe_field(checkout_session, "mode"),
            customer_id=stripe_id(stripe_field(checkout_session, "customer")),
            metadata=metadata_dict(stripe_field(checkout_session, "metadata")),
        )


def get_stripe_gateway() -> StripeGateway:
    settings = get_settings()
    return StripeGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        timeout_seconds=float(settings.stripe_api_timeout_seconds),
        webhook_tolerance_seconds=int(settings.stripe_webhook_tolerance_seconds),
    )
