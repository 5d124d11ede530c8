from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from paywall.db.models.base import Base


class ProcessedEvent(Base):
    __tablename__ = "processed_events"
    __table_args__ = (
        CheckConstraint(
            "outcome IN ('APPLIED','ANOMALY','RECOVERED','PENDING_REVIEW')",
            name="ck_processed_events_outcome",
        ),
        Index("idx_processed_events_processed_at", "processed_at"),
        Index(
            "idx_processed_events_open_anomalies",
            "processed_at",
            postgresql_where=text("outcome = 'ANOMALY'"),
        ),
    )

    provider_event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)
    detail: Mapped[dict[str, object]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
