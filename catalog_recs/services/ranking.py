"""
Ranking pipeline.

Two-phase architecture:
1. Lightweight scoring: score every visible item from its ScoringProjection (ids only)
2. Full fetch: hydrate only the requested page of winners, then restore rank order

Personalized mode ranks the whole catalog against the user's preference
profile; similarity mode ranks it against one reference item.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional, Sequence

from catalog_recs.config import Settings, get_settings
from catalog_recs.core.exceptions import ReferenceNotFound
from catalog_recs.core.tasks import gather_or_cancel
from catalog_recs.services.interfaces import (
    HydrationGateway, ProjectionStore, SignalStore, VisibilityPredicate,
)
from catalog_recs.services.preference_profile import (
    CriteriaCounts, PreferenceProfileBuilder, count_criteria,
)
from catalog_recs.services.projection_store import ScoringProjection
from catalog_recs.services.scoring import has_relations, personalized_score, similarity_score

logger = logging.getLogger(__name__)

NO_CRITERIA_MESSAGE = "No recommendations yet"
NO_MATCHES_MESSAGE = "No matching recommendations found"


class RankingMode(str, Enum):
    PERSONALIZED = "personalized"
    SIMILAR = "similar"


@dataclass(frozen=True)
class ScoredCandidate:
    id: str
    score: float
    occurred_on: Optional[date] = None  # tie-break


@dataclass
class RankedPage:
    """One page of ranked, hydrated items."""

    items: list[Any]
    total_match_count: int
    page: int
    per_page: int
    # Only set when nothing could be ranked in personalized mode
    diagnostic_counts: Optional[CriteriaCounts] = None
    message: Optional[str] = None


def score_projections(
    projections: Sequence[ScoringProjection],
    score_fn: Callable[[ScoringProjection], float],
) -> list[ScoredCandidate]:
    """Score projections, keeping only strictly positive scores."""
    scored = []
    for projection in projections:
        score = score_fn(projection)
        if score > 0:
            scored.append(ScoredCandidate(projection.id, score, projection.occurred_on))
    return scored


def _rank_key(candidate: ScoredCandidate):
    # score desc, date desc with nulls last, id asc
    if candidate.occurred_on is None:
        return (-candidate.score, 1, 0, candidate.id)
    return (-candidate.score, 0, -candidate.occurred_on.toordinal(), candidate.id)


def sort_candidates(candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
    return sorted(candidates, key=_rank_key)


def paginate(ids: Sequence[str], page: int, per_page: int) -> list[str]:
    start = (page - 1) * per_page
    return list(ids[start:start + per_page])


def reorder(ids: Sequence[str], entities: Sequence[Any]) -> list[Any]:
    """Restore ranked order; ids the gateway did not return are dropped."""
    by_id = {str(entity.id): entity for entity in entities}
    return [by_id[i] for i in ids if i in by_id]


class RankingPipeline:
    """Orchestrates exclusion, scoring, pagination and hydration for one request."""

    def __init__(
        self,
        visibility: VisibilityPredicate,
        projection_store: ProjectionStore,
        signal_store: SignalStore,
        hydration: HydrationGateway,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.visibility = visibility
        self.projection_store = projection_store
        self.signal_store = signal_store
        self.hydration = hydration
        self.profile_builder = PreferenceProfileBuilder(signal_store)
        self.settings = settings or get_settings()
        self.clock = clock

    async def rank(
        self,
        mode: RankingMode,
        user_id: int,
        reference_id: Optional[str] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> RankedPage:
        if mode == RankingMode.SIMILAR:
            if reference_id is None:
                raise ValueError("reference_id is required for similarity ranking")
            return await self.rank_similar(user_id, reference_id, page, per_page)
        return await self.rank_for_user(user_id, page, per_page)

    async def rank_for_user(
        self,
        user_id: int,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> RankedPage:
        """
        Rank the visible catalog for ``user_id`` by preference affinity.

        Uses favorites, high ratings (80+), derived weights from rated/favorited
        items, interaction recency and engagement quality.
        """
        start = time.perf_counter()
        page, per_page = self._clamp(page, per_page, self.settings.recommendation_default_per_page)

        # Everything below depends only on the user id
        excluded, projections, (entity_signals, item_signals), watch_history = await gather_or_cancel(
            self.visibility.excluded_ids(user_id, hidden_only=self.settings.exclusions_hidden_only),
            self.projection_store.load_projections(),
            self.profile_builder.load_signals(user_id),
            self.signal_store.watch_history(user_id),
        )

        criteria = count_criteria(entity_signals, item_signals)
        if not criteria.has_any():
            return RankedPage(
                items=[], total_match_count=0, page=page, per_page=per_page,
                diagnostic_counts=criteria, message=NO_CRITERIA_MESSAGE,
            )

        visible = [p for p in projections if p.id not in excluded]
        profile = self.profile_builder.build(entity_signals, item_signals, {p.id: p for p in visible})

        scored = await self._score_all(
            visible,
            partial(personalized_score, profile=profile, watch_history=watch_history, now=self.clock()),
        )
        ranked = sort_candidates(scored)[:self.settings.recommendation_candidate_cap]

        if not ranked:
            return RankedPage(
                items=[], total_match_count=0, page=page, per_page=per_page,
                diagnostic_counts=criteria, message=NO_MATCHES_MESSAGE,
            )

        items = await self._hydrate_page(user_id, ranked, page, per_page)

        logger.info(
            f"rank_for_user completed: user={user_id}, visible={len(visible)}, "
            f"candidates={len(ranked)}, returned={len(items)}, page={page}, "
            f"took={(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return RankedPage(items=items, total_match_count=len(ranked), page=page, per_page=per_page)

    async def rank_similar(
        self,
        user_id: int,
        reference_id: str,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> RankedPage:
        """
        Rank the visible catalog by relation overlap with ``reference_id``.

        Contributors: 3 points each, owner: 2 points, direct tags: 1 point each.
        """
        start = time.perf_counter()
        page, per_page = self._clamp(page, per_page, self.settings.similar_default_per_page)

        excluded, reference = await gather_or_cancel(
            self.visibility.excluded_ids(user_id, hidden_only=self.settings.exclusions_hidden_only),
            self.projection_store.load_projection(reference_id),
        )
        if reference is None or reference.id in excluded:
            raise ReferenceNotFound(reference_id)

        if not has_relations(reference):
            return RankedPage(items=[], total_match_count=0, page=page, per_page=per_page)

        projections = await self.projection_store.load_projections()
        candidates = [
            p for p in projections
            if p.id not in excluded and p.id != reference.id
        ]

        scored = await self._score_all(candidates, partial(similarity_score, reference=reference))
        ranked = sort_candidates(scored)

        items = await self._hydrate_page(user_id, ranked, page, per_page) if ranked else []

        logger.info(
            f"rank_similar completed: item={reference_id}, candidates={len(ranked)}, "
            f"returned={len(items)}, page={page}, "
            f"took={(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return RankedPage(items=items, total_match_count=len(ranked), page=page, per_page=per_page)

    async def _score_all(
        self,
        projections: list[ScoringProjection],
        score_fn: Callable[[ScoringProjection], float],
    ) -> list[ScoredCandidate]:
        """Score serially, or in shards on worker threads for large catalogs."""
        workers = self.settings.scoring_workers
        if workers <= 1 or len(projections) < self.settings.scoring_shard_threshold:
            return score_projections(projections, score_fn)

        shard_size = math.ceil(len(projections) / workers)
        shards = [
            projections[i:i + shard_size]
            for i in range(0, len(projections), shard_size)
        ]
        results = await asyncio.gather(
            *(asyncio.to_thread(score_projections, shard, score_fn) for shard in shards)
        )
        return [candidate for shard in results for candidate in shard]

    async def _hydrate_page(
        self,
        user_id: int,
        ranked: list[ScoredCandidate],
        page: int,
        per_page: int,
    ) -> list[Any]:
        page_ids = paginate([c.id for c in ranked], page, per_page)
        if not page_ids:
            return []
        entities = await self.hydration.fetch_by_ids(user_id, page_ids)
        return reorder(page_ids, entities)

    @staticmethod
    def _clamp(page: int, per_page: Optional[int], default_per_page: int) -> tuple[int, int]:
        page = max(page or 1, 1)
        per_page = default_per_page if per_page is None else max(per_page, 1)
        return page, per_page
