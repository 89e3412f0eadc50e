"""Hydration of the final ranked page into display-ready items."""

import logging
import time
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from catalog_recs.core.exceptions import HydrationFailure
from catalog_recs.db.models import Item, ItemRating, WatchHistory
from catalog_recs.db.schemas import EntityRef, ItemSummary

logger = logging.getLogger(__name__)


def _ref(entity) -> EntityRef:
    return EntityRef(id=str(entity.id), name=entity.name)


class ItemHydrator:
    """
    Fetches full items by id for one page of results.

    Row order follows the database, not ``ids``; callers reorder.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch_by_ids(self, user_id: int, ids: Sequence[str]) -> list[ItemSummary]:
        if not ids:
            return []

        start = time.perf_counter()
        try:
            async with self.session_factory() as session:
                item_result = await session.execute(
                    select(Item)
                    .options(
                        selectinload(Item.owner),
                        selectinload(Item.contributors),
                        selectinload(Item.tags),
                    )
                    .where(Item.id.in_(ids))
                    .where(Item.deleted_at.is_(None))
                )
                items = item_result.scalars().all()

                # Merge user data only for this page
                rating_result = await session.execute(
                    select(ItemRating.item_id, ItemRating.rating, ItemRating.favorite)
                    .where(ItemRating.user_id == user_id)
                    .where(ItemRating.item_id.in_(ids))
                )
                ratings = {row.item_id: row for row in rating_result.all()}

                watch_result = await session.execute(
                    select(WatchHistory.item_id, WatchHistory.play_count)
                    .where(WatchHistory.user_id == user_id)
                    .where(WatchHistory.item_id.in_(ids))
                )
                play_counts = {row.item_id: row.play_count or 0 for row in watch_result.all()}
        except SQLAlchemyError as e:
            logger.error(f"Failed to hydrate {len(ids)} items for user {user_id}: {e}")
            raise HydrationFailure("Ranked items could not be loaded") from e

        summaries = []
        for item in items:
            rating = ratings.get(item.id)
            summaries.append(ItemSummary(
                id=str(item.id),
                title=item.title,
                details=item.details,
                occurred_on=item.date,
                engagement_count=item.engagement_count or 0,
                owner=_ref(item.owner) if item.owner else None,
                contributors=[_ref(c) for c in item.contributors],
                tags=[_ref(t) for t in item.tags],
                rating=rating.rating if rating else None,
                favorite=bool(rating.favorite) if rating else False,
                play_count=play_counts.get(item.id, 0),
            ))

        logger.info(
            f"fetch_by_ids: {(time.perf_counter() - start) * 1000:.0f}ms, "
            f"requested={len(ids)}, found={len(summaries)}"
        )
        return summaries
