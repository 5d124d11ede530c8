from __future__ import annotations

from sqlalchemy import exists, select, text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from paywall.db.models.unlocks import Unlock


class UnlocksRepo:
    @staticmethod
    async def insert_moment_if_absent(
        session: AsyncSession,
        *,
        user_id: str,
        character_id: str,
        situation_id: str,
        moment_level: str,
        source_event_id: str | None,
    ) -> bool:
        stmt = (
            postgresql_insert(Unlock)
            .values(
                user_id=user_id,
                unlock_type="moment",
                character_id=character_id,
                situation_id=situation_id,
                moment_level=moment_level,
                source_event_id=source_event_id,
            )
            .on_conflict_do_nothing(
                index_elements=[
                    Unlock.user_id,
                    Unlock.character_id,
                    Unlock.situation_id,
                    Unlock.moment_level,
                ],
                index_where=text("unlock_type = 'moment'"),
            )
            .returning(Unlock.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def insert_media_if_absent(
        session: AsyncSession,
        *,
        user_id: str,
        character_id: str,
        media_id: str,
        source_event_id: str | None,
    ) -> bool:
        stmt = (
            postgresql_insert(Unlock)
            .values(
                user_id=user_id,
                unlock_type="media",
                character_id=character_id,
                media_id=media_id,
                source_event_id=source_event_id,
            )
            .on_conflict_do_nothing(
                index_elements=[Unlock.user_id, Unlock.character_id, Unlock.media_id],
                index_where=text("unlock_type = 'media'"),
            )
            .returning(Unlock.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def has_moment_unlock(
        session: AsyncSession,
        *,
        user_id: str,
        character_id: str,
        situation_id: str,
        moment_level: str,
    ) -> bool:
        stmt = select(
            exists().where(
                Unlock.user_id == user_id,
                Unlock.unlock_type == "moment",
                Unlock.character_id == character_id,
                Unlock.situation_id == situation_id,
                Unlock.moment_level == moment_level,
            )
        )
        result = await session.execute(stmt)
        return bool(result.scalar_one())

    @staticmethod
    async def has_media_unlock(
        session: AsyncSession,
        *,
        user_id: str,
        character_id: str,
        media_id: str,
    ) -> bool:
        stmt = select(
            exists().where(
                Unlock.user_id == user_id,
                Unlock.unlock_type == "media",
                Unlock.character_id == character_id,
                Unlock.media_id == media_id,
            )
        )
        result = await session.execute(stmt)
        return bool(result.scalar_one())

    @staticmethod
    async def list_for_user(session: AsyncSession, *, user_id: str) -> list[Unlock]:
        stmt = (
            select(Unlock)
            .where(Unlock.user_id == user_id)
            .order_by(Unlock.created_at.asc(), Unlock.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars())
