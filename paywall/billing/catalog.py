from __future__ import annotations

import re
from dataclasses import dataclass

from paywall.billing.errors import ConfigurationError

PRICE_REF_RE = re.compile(r"^price_[a-zA-Z0-9]+$")

MOMENT_LEVELS = ("private", "intimate", "exclusive")
PURCHASE_TYPES = ("moment", "media", "plus")


@dataclass(frozen=True, slots=True)
class ProductSpec:
    product_code: str
    purchase_type: str
    name: str
    description: str
    price_in_cents: int
    mode: str
    price_setting: str
    price_env: str
    moment_level: str | None = None


PRODUCTS: dict[str, ProductSpec] = {
    "MOMENT_PRIVATE": ProductSpec(
        product_code="MOMENT_PRIVATE",
        purchase_type="moment",
        name="Private Moment",
        description="Unlock a private moment with your companion.",
        price_in_cents=399,
        mode="payment",
        price_setting="stripe_price_private_moment",
        price_env="STRIPE_PRICE_PRIVATE_MOMENT",
        moment_level="private",
    ),
    "MOMENT_INTIMATE": ProductSpec(
        product_code="MOMENT_INTIMATE",
        purchase_type="moment",
        name="Intimate Moment",
        description="Unlock an intimate moment with deeper connection.",
        price_in_cents=499,
        mode="payment",
        price_setting="stripe_price_intimate_moment",
        price_env="STRIPE_PRICE_INTIMATE_MOMENT",
        moment_level="intimate",
    ),
    "MOMENT_EXCLUSIVE": ProductSpec(
        product_code="MOMENT_EXCLUSIVE",
        purchase_type="moment",
        name="Exclusive Moment",
        description="Unlock an exclusive, premium moment.",
        price_in_cents=699,
        mode="payment",
        price_setting="stripe_price_exclusive_moment",
        price_env="STRIPE_PRICE_EXCLUSIVE_MOMENT",
        moment_level="exclusive",
    ),
    "MEDIA_PRIVATE_PHOTO": ProductSpec(
        product_code="MEDIA_PRIVATE_PHOTO",
        purchase_type="media",
        name="Private Photo",
        description="Unlock a private photo.",
        price_in_cents=199,
        mode="payment",
        price_setting="stripe_price_private_photo",
        price_env="STRIPE_PRICE_PRIVATE_PHOTO",
    ),
    "WHISPR_PLUS_MONTHLY": ProductSpec(
        product_code="WHISPR_PLUS_MONTHLY",
        purchase_type="plus",
        name="WHISPR Plus",
        description="Unlimited private and intimate moments, billed monthly.",
        price_in_cents=1299,
        mode="subscription",
        price_setting="stripe_price_whispr_plus_monthly",
        price_env="STRIPE_PRICE_WHISPR_PLUS_MONTHLY",
    ),
}


def get_product(product_code: str) -> ProductSpec | None:
    return PRODUCTS.get(product_code)


def product_for_purchase(purchase_type: str, moment_level: str | None = None) -> ProductSpec | None:
    for product in PRODUCTS.values():
        if product.purchase_type != purchase_type:
            continue
        if purchase_type == "moment" and product.moment_level != moment_level:
            continue
        return product
    return None


def resolve_price_ref(product: ProductSpec, settings: object) -> str:
    raw_value = getattr(settings, product.price_setting, "")
    price_ref = raw_value.strip() if isinstance(raw_value, str) else ""
    if not price_ref:
        raise ConfigurationError(f"Missing Stripe price for {product.product_code}: set {product.price_env}")
    if PRICE_REF_RE.match(price_ref) is None:
        raise ConfigurationError(
            f"Invalid Stripe price for {product.product_code}: {product.price_env} must look like price_..."
        )
    return price_ref


def product_for_price_ref(price_ref: str, settings: object) -> ProductSpec | None:
    """Reverse lookup of a configured price id; unconfigured products never match."""
    for product in PRODUCTS.values():
        raw_value = getattr(settings, product.price_setting, "")
        if isinstance(raw_value, str) and raw_value.strip() and raw_value.strip() == price_ref:
            return product
    return None
