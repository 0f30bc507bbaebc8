"""Persistence port used by match completion and the rating service.

Services never reach for a global database client; callers hand them an
object satisfying :class:`PersistencePort`. :class:`SqlAlchemyStore` is the
production implementation and commits every write on its own, so a failure
part way through a sequence leaves the earlier writes in place.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .cache import TTLCache, settings_cache
from .config import RATING_SETTINGS_ID
from .db_errors import is_missing_table_error
from .models import (
    Event,
    MatchScore,
    MatchStatistics,
    PlayerAchievement,
    Profile,
    RankingHistory,
    SystemSetting,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemSettings:
    provisional_k_factor: float
    established_k_factor: float
    initial_rating: float
    matches_for_established: int
    rating_scale_min: float
    rating_scale_max: float


@dataclass(frozen=True)
class ProfileRating:
    id: str
    current_rating: float | None
    matches_played: int


class PersistencePort(Protocol):
    """Relational read/write interface consumed by the services."""

    async def get_system_settings(self) -> SystemSettings:
        ...

    async def get_profile_ratings(self, ids: Sequence[str]) -> list[ProfileRating]:
        ...

    async def update_profile(self, profile_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def update_event(self, event_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def insert_rows(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        ...


TABLES = {
    "match_score": MatchScore,
    "match_statistics": MatchStatistics,
    "ranking_history": RankingHistory,
    "player_achievement": PlayerAchievement,
}


class SqlAlchemyStore:
    """:class:`PersistencePort` backed by an ``AsyncSession``."""

    def __init__(self, session: AsyncSession, cache: TTLCache | None = settings_cache) -> None:
        self.session = session
        self.cache = cache

    async def get_system_settings(self) -> SystemSettings:
        if self.cache is None:
            return await self._load_settings()
        return await self.cache.get_or_load(RATING_SETTINGS_ID, self._load_settings)

    async def _load_settings(self) -> SystemSettings:
        try:
            row = await self.session.get(SystemSetting, RATING_SETTINGS_ID)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            if is_missing_table_error(exc, SystemSetting.__tablename__):
                raise LookupError("system_settings table is missing") from exc
            raise
        if row is None:
            raise LookupError(f"system setting {RATING_SETTINGS_ID!r} not found")
        return SystemSettings(
            provisional_k_factor=row.provisional_k_factor,
            established_k_factor=row.established_k_factor,
            initial_rating=row.initial_rating,
            matches_for_established=row.matches_for_established,
            rating_scale_min=row.rating_scale_min,
            rating_scale_max=row.rating_scale_max,
        )

    async def get_profile_ratings(self, ids: Sequence[str]) -> list[ProfileRating]:
        rows = (
            await self.session.execute(select(Profile).where(Profile.id.in_(list(ids))))
        ).scalars().all()
        return [
            ProfileRating(
                id=p.id,
                current_rating=p.current_rating,
                matches_played=p.matches_played or 0,
            )
            for p in rows
        ]

    async def _update(self, model, key: str, fields: Mapping[str, Any]) -> None:
        unknown = [name for name in fields if name not in model.__table__.columns]
        if unknown:
            raise KeyError(f"{model.__tablename__} has no column(s) {unknown}")
        try:
            obj = await self.session.get(model, key)
            if obj is None:
                raise LookupError(f"{model.__tablename__} '{key}' not found")
            for name, value in fields.items():
                setattr(obj, name, value)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def update_profile(self, profile_id: str, fields: Mapping[str, Any]) -> None:
        await self._update(Profile, profile_id, fields)

    async def update_event(self, event_id: str, fields: Mapping[str, Any]) -> None:
        await self._update(Event, event_id, fields)

    async def insert_rows(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        model = TABLES.get(table)
        if model is None:
            raise KeyError(f"unknown table {table!r}")
        if not rows:
            return
        try:
            for row in rows:
                values = dict(row)
                values.setdefault("id", uuid.uuid4().hex)
                self.session.add(model(**values))
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        logger.debug("Inserted %d row(s) into %s", len(rows), table)
