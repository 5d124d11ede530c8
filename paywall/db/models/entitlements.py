from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from paywall.db.models.base import Base


class Entitlement(Base):
    __tablename__ = "entitlements"
    __table_args__ = (
        CheckConstraint(
            "plus_status IN ('none','active','past_due','canceled')",
            name="ck_entitlements_plus_status",
        ),
        CheckConstraint(
            "NOT has_plus OR plus_status = 'active'",
            name="ck_entitlements_has_plus_requires_active",
        ),
        UniqueConstraint("provider_customer_id", name="uq_entitlements_provider_customer_id"),
        Index("idx_entitlements_subscription", "provider_subscription_id"),
        Index("idx_entitlements_period_end", "plus_current_period_end"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    has_plus: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    plus_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        server_default=text("'none'"),
    )
    plus_current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    provider_customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    provider_subscription_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    plan_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
