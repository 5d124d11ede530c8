from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from paywall.db.models.base import Base


class Unlock(Base):
    __tablename__ = "unlocks"
    __table_args__ = (
        CheckConstraint("unlock_type IN ('moment','media')", name="ck_unlocks_type"),
        CheckConstraint(
            "moment_level IS NULL OR moment_level IN ('private','intimate','exclusive')",
            name="ck_unlocks_moment_level",
        ),
        CheckConstraint(
            "unlock_type <> 'moment' OR (situation_id IS NOT NULL AND moment_level IS NOT NULL)",
            name="ck_unlocks_moment_shape",
        ),
        CheckConstraint(
            "unlock_type <> 'media' OR media_id IS NOT NULL",
            name="ck_unlocks_media_shape",
        ),
        Index("idx_unlocks_user", "user_id"),
        Index(
            "uq_unlocks_moment",
            "user_id",
            "character_id",
            "situation_id",
            "moment_level",
            unique=True,
            postgresql_where=text("unlock_type = 'moment'"),
        ),
        Index(
            "uq_unlocks_media",
            "user_id",
            "character_id",
            "media_id",
            unique=True,
            postgresql_where=text("unlock_type = 'media'"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlock_type: Mapped[str] = mapped_column(String(16), nullable=False)
    character_id: Mapped[str] = mapped_column(String(64), nullable=False)
    situation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    moment_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    media_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
