"""
Scoring projections: minimal per-item records for ranking.

Loading full relational items for the whole catalog just to score them is far
too expensive, so the ranking engine works on ``ScoringProjection`` rows that
carry only ids. Relation ids are aggregated per item by PostgreSQL
(``array_agg``) so the whole catalog arrives in a single round-trip.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_recs.core.exceptions import ProjectionUnavailable
from catalog_recs.db.models import (
    Item, item_contributors, item_tags, contributor_tags, owner_tags,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringProjection:
    """Immutable per-item snapshot used by the scoring engine."""

    id: str
    owner_id: Optional[str] = None
    contributor_ids: frozenset[str] = field(default_factory=frozenset)
    tag_ids: frozenset[str] = field(default_factory=frozenset)
    # Tags inherited through the item's contributors / owner
    contributor_tag_ids: frozenset[str] = field(default_factory=frozenset)
    owner_tag_ids: frozenset[str] = field(default_factory=frozenset)
    engagement_count: int = 0
    occurred_on: Optional[date] = None


def _aggregate(column, *where):
    """Correlated ``array_agg(DISTINCT column)`` subquery for one relation."""
    return select(func.array_agg(column.distinct())).where(*where).scalar_subquery()


def build_projection_query():
    """Select one row per live item with its relation ids pre-aggregated."""
    contributor_ids = _aggregate(
        item_contributors.c.contributor_id,
        item_contributors.c.item_id == Item.id,
    )
    tag_ids = _aggregate(
        item_tags.c.tag_id,
        item_tags.c.item_id == Item.id,
    )
    contributor_tag_ids = _aggregate(
        contributor_tags.c.tag_id,
        contributor_tags.c.contributor_id == item_contributors.c.contributor_id,
        item_contributors.c.item_id == Item.id,
    )
    owner_tag_ids = _aggregate(
        owner_tags.c.tag_id,
        owner_tags.c.owner_id == Item.owner_id,
    )

    return (
        select(
            Item.id,
            Item.owner_id,
            Item.engagement_count,
            Item.date,
            contributor_ids.label("contributor_ids"),
            tag_ids.label("tag_ids"),
            contributor_tag_ids.label("contributor_tag_ids"),
            owner_tag_ids.label("owner_tag_ids"),
        )
        .where(Item.deleted_at.is_(None))
    )


def row_to_projection(row) -> ScoringProjection:
    """Decode an aggregated row; ``array_agg`` yields NULL for no relations."""
    return ScoringProjection(
        id=str(row.id),
        owner_id=str(row.owner_id) if row.owner_id is not None else None,
        contributor_ids=frozenset(str(i) for i in (row.contributor_ids or ()) if i is not None),
        tag_ids=frozenset(str(i) for i in (row.tag_ids or ()) if i is not None),
        contributor_tag_ids=frozenset(str(i) for i in (row.contributor_tag_ids or ()) if i is not None),
        owner_tag_ids=frozenset(str(i) for i in (row.owner_tag_ids or ()) if i is not None),
        engagement_count=max(row.engagement_count or 0, 0),
        occurred_on=row.date,
    )


class ProjectionRepository:
    """SQL-backed scoring projection store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load_projections(self) -> list[ScoringProjection]:
        """Load the whole live catalog as scoring projections (one query)."""
        start = time.perf_counter()
        try:
            async with self.session_factory() as session:
                result = await session.execute(build_projection_query())
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load scoring projections: {e}")
            raise ProjectionUnavailable("Catalog projections could not be loaded") from e

        projections = [row_to_projection(row) for row in rows]
        logger.info(
            f"load_projections: {(time.perf_counter() - start) * 1000:.0f}ms, "
            f"count={len(projections)}"
        )
        return projections

    async def load_projection(self, item_id: str) -> Optional[ScoringProjection]:
        """Load a single item's projection, or None if it does not exist."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    build_projection_query().where(Item.id == item_id)
                )
                row = result.first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load projection for {item_id}: {e}")
            raise ProjectionUnavailable(f"Projection for item {item_id} could not be loaded") from e

        return row_to_projection(row) if row is not None else None
