from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from paywall.db.models.base import Base


class PurchaseRecord(Base):
    __tablename__ = "purchase_records"
    __table_args__ = (
        UniqueConstraint("provider_event_id", name="uq_purchase_records_provider_event_id"),
        Index("idx_purchase_records_user_created", "user_id", "created_at"),
        Index("idx_purchase_records_checkout_session", "checkout_session_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    provider_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    checkout_session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    purchase_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    product_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    character_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    situation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    moment_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    media_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
