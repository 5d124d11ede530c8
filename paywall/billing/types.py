from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from paywall.billing.catalog import ProductSpec


@dataclass(frozen=True, slots=True)
class PurchaseIntent:
    product: ProductSpec
    character_id: str | None = None
    situation_id: str | None = None
    moment_level: str | None = None
    media_id: str | None = None

    @property
    def purchase_type(self) -> str:
        return self.product.purchase_type

    @property
    def mode(self) -> str:
        return self.product.mode


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    user_id: str
    email: str | None = None


@dataclass(slots=True)
class CheckoutSessionResult:
    session_id: str
    url: str
    product_code: str
    mode: str
    customer_id: str


@dataclass(frozen=True, slots=True)
class UnlockView:
    unlock_type: str
    character_id: str
    situation_id: str | None
    moment_level: str | None
    media_id: str | None


@dataclass(slots=True)
class EntitlementSnapshot:
    user_id: str
    has_plus: bool
    plus_status: str
    plus_current_period_end: datetime | None
    provider_customer_id: str | None
    unlocks: list[UnlockView] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UnlockCheck:
    is_unlocked: bool
    reason: str


@dataclass(slots=True)
class WebhookResult:
    status: str
    event_id: str | None = None
    event_type: str | None = None
    detail: dict[str, object] = field(default_factory=dict)
