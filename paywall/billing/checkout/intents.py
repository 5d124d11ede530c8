from __future__ import annotations

from collections.abc import Mapping

from paywall.billing.catalog import (
    MOMENT_LEVELS,
    PURCHASE_TYPES,
    ProductSpec,
    product_for_price_ref,
    product_for_purchase,
)
from paywall.billing.errors import ValidationError
from paywall.billing.types import PurchaseIntent

DISCRIMINATOR_KEYS = {
    "character_id": "characterId",
    "situation_id": "situationId",
    "moment_level": "momentLevel",
    "media_id": "mediaId",
}


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text_value = str(value).strip()
    return text_value or None


def _merged_discriminators(
    fields: Mapping[str, object],
    metadata: Mapping[str, object] | None,
) -> dict[str, str | None]:
    merged: dict[str, str | None] = {}
    for field_name, metadata_key in DISCRIMINATOR_KEYS.items():
        value = _clean(fields.get(field_name))
        if value is None and metadata:
            value = _clean(metadata.get(metadata_key))
        merged[field_name] = value
    return merged


def _resolve_product(
    *,
    price_ref: str | None,
    purchase_type: str | None,
    moment_level: str | None,
    settings: object,
) -> ProductSpec:
    if price_ref is not None:
        product = product_for_price_ref(price_ref, settings)
        if product is None:
            raise ValidationError(f"Unknown price: {price_ref}")
        return product

    if purchase_type is None:
        raise ValidationError("Missing priceRef or purchaseType")
    if purchase_type not in PURCHASE_TYPES:
        raise ValidationError(f"Unknown purchaseType: {purchase_type}")
    if purchase_type == "moment" and moment_level not in MOMENT_LEVELS:
        raise ValidationError("Missing or invalid momentLevel")

    product = product_for_purchase(purchase_type, moment_level)
    if product is None:
        raise ValidationError(f"No product for purchaseType {purchase_type}")
    return product


def normalize_purchase_intent(
    *,
    price_ref: str | None = None,
    purchase_type: str | None = None,
    character_id: str | None = None,
    situation_id: str | None = None,
    moment_level: str | None = None,
    media_id: str | None = None,
    metadata: Mapping[str, object] | None = None,
    settings: object,
) -> PurchaseIntent:
    """Turn either checkout request shape into one PurchaseIntent.

    Discriminators may come as top-level fields or inside ``metadata``; top-level
    wins. The product, and so the checkout mode, always comes from the catalog.
    """
    discriminators = _merged_discriminators(
        {
            "character_id": character_id,
            "situation_id": situation_id,
            "moment_level": moment_level,
            "media_id": media_id,
        },
        metadata,
    )
    resolved_purchase_type = _clean(purchase_type)
    if resolved_purchase_type is None and metadata:
        resolved_purchase_type = _clean(metadata.get("purchaseType"))

    product = _resolve_product(
        price_ref=_clean(price_ref),
        purchase_type=resolved_purchase_type,
        moment_level=discriminators["moment_level"],
        settings=settings,
    )

    if product.purchase_type == "moment":
        if discriminators["character_id"] is None or discriminators["situation_id"] is None:
            raise ValidationError("Moment purchases require characterId and situationId")
        return PurchaseIntent(
            product=product,
            character_id=discriminators["character_id"],
            situation_id=discriminators["situation_id"],
            moment_level=product.moment_level,
        )

    if product.purchase_type == "media":
        if discriminators["character_id"] is None or discriminators["media_id"] is None:
            raise ValidationError("Media purchases require characterId and mediaId")
        return PurchaseIntent(
            product=product,
            character_id=discriminators["character_id"],
            media_id=discriminators["media_id"],
        )

    return PurchaseIntent(product=product)


def build_checkout_metadata(*, user_id: str, intent: PurchaseIntent) -> dict[str, str]:
    metadata = {
        "userId": user_id,
        "purchaseType": intent.purchase_type,
        "productCode": intent.product.product_code,
    }
    for field_name, metadata_key in DISCRIMINATOR_KEYS.items():
        value = getattr(intent, field_name)
        if value:
            metadata[metadata_key] = value
    return metadata
