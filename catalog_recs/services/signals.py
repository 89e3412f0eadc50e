"""User preference signals: explicit entity ratings, item ratings, watch history."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_recs.core.exceptions import ProfileBuildFailure
from catalog_recs.db.models import EntityRating, ItemRating, WatchHistory

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    """Relation kinds that carry user-expressible preferences."""
    CONTRIBUTOR = "contributor"
    OWNER = "owner"
    TAG = "tag"


@dataclass(frozen=True)
class EntitySignal:
    """Explicit preference for one contributor, owner or tag."""
    entity_id: str
    favorite: bool = False
    rating: Optional[int] = None  # 0-100


@dataclass(frozen=True)
class ItemSignal:
    """Scene-level preference for one catalog item."""
    item_id: str
    favorite: bool = False
    rating: Optional[int] = None  # 0-100


@dataclass(frozen=True)
class WatchRecord:
    """How often and how recently a user interacted with an item."""
    item_id: str
    play_count: int = 0
    last_played_at: Optional[datetime] = None


class SignalRepository:
    """SQL-backed signal store. Any failure aborts profile construction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def entity_signals(self, user_id: int, kind: EntityKind) -> list[EntitySignal]:
        query = (
            select(EntityRating.entity_id, EntityRating.favorite, EntityRating.rating)
            .where(EntityRating.user_id == user_id)
            .where(EntityRating.entity_kind == kind.value)
        )
        rows = await self._fetch(query, f"{kind.value} ratings", user_id)
        return [
            EntitySignal(entity_id=str(r.entity_id), favorite=bool(r.favorite), rating=r.rating)
            for r in rows
        ]

    async def item_signals(self, user_id: int) -> list[ItemSignal]:
        query = (
            select(ItemRating.item_id, ItemRating.favorite, ItemRating.rating)
            .where(ItemRating.user_id == user_id)
        )
        rows = await self._fetch(query, "item ratings", user_id)
        return [
            ItemSignal(item_id=str(r.item_id), favorite=bool(r.favorite), rating=r.rating)
            for r in rows
        ]

    async def watch_history(self, user_id: int) -> dict[str, WatchRecord]:
        query = (
            select(WatchHistory.item_id, WatchHistory.play_count, WatchHistory.last_played_at)
            .where(WatchHistory.user_id == user_id)
        )
        rows = await self._fetch(query, "watch history", user_id)
        return {
            str(r.item_id): WatchRecord(
                item_id=str(r.item_id),
                play_count=r.play_count or 0,
                last_played_at=r.last_played_at,
            )
            for r in rows
        }

    async def _fetch(self, query, what: str, user_id: int):
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return result.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {what} for user {user_id}: {e}")
            raise ProfileBuildFailure(f"Could not load {what}") from e
