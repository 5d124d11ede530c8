from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    price_ref: str | None = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("priceRef", "priceId", "price_ref"),
    )
    purchase_type: str | None = Field(
        default=None,
        max_length=16,
        validation_alias=AliasChoices("purchaseType", "purchase_type"),
    )
    character_id: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("characterId", "character_id"),
    )
    situation_id: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("situationId", "situation_id"),
    )
    moment_level: str | None = Field(
        default=None,
        max_length=16,
        validation_alias=AliasChoices("momentLevel", "moment_level"),
    )
    media_id: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("mediaId", "media_id"),
    )
    metadata: dict[str, str | int | float | bool | None] | None = None


class UnlockCheckRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    character_id: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("characterId", "character_id"),
    )
    situation_id: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("situationId", "situation_id"),
    )
    moment_level: str | None = Field(
        default=None,
        max_length=16,
        validation_alias=AliasChoices("momentLevel", "moment_level"),
    )
    media_id: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("mediaId", "media_id"),
    )
