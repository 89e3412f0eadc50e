"""
Build a user's preference profile from stored signals.

Explicit signals (favorites and high ratings on contributors, owners and tags)
become membership sets. Scene-level signals (rated or favorited items) are
turned into derived weights: every contributor, owner and direct tag of a
qualifying item accumulates that item's weight multiplier. Only the user's own
rated/favorited items are walked, so the cost is bounded by user activity and
not by catalog size.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from catalog_recs.core.tasks import gather_or_cancel
from catalog_recs.services.projection_store import ScoringProjection
from catalog_recs.services.signals import EntityKind, EntitySignal, ItemSignal

logger = logging.getLogger(__name__)

# Scene-level weight configuration
SCENE_WEIGHT_BASE = 0.4
SCENE_WEIGHT_FAVORITE_BONUS = 0.15
SCENE_RATING_FLOOR = 40
SCENE_FAVORITED_IMPLICIT_RATING = 85

# Explicit entity ratings at or above this count as "highly rated"
HIGH_RATING_THRESHOLD = 80


@dataclass(frozen=True)
class KindPreferences:
    """Preferences of one relation kind."""

    favorite: frozenset[str] = field(default_factory=frozenset)
    high_rated: frozenset[str] = field(default_factory=frozenset)
    derived_weight: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PreferenceProfile:
    """Read-only per-request preference profile."""

    contributor: KindPreferences = field(default_factory=KindPreferences)
    owner: KindPreferences = field(default_factory=KindPreferences)
    tag: KindPreferences = field(default_factory=KindPreferences)


@dataclass(frozen=True)
class CriteriaCounts:
    """How many signals the user has, reported when nothing could be ranked."""

    favorited_contributors: int = 0
    rated_contributors: int = 0
    favorited_owners: int = 0
    rated_owners: int = 0
    favorited_tags: int = 0
    rated_tags: int = 0
    favorited_items: int = 0
    rated_items: int = 0

    def has_any(self) -> bool:
        """Check if the user has any criteria that could generate recommendations."""
        return any((
            self.favorited_contributors, self.rated_contributors,
            self.favorited_owners, self.rated_owners,
            self.favorited_tags, self.rated_tags,
            self.favorited_items, self.rated_items,
        ))


def scene_weight_multiplier(rating: Optional[int], favorite: bool) -> float:
    """
    Weight multiplier of one rated/favorited item.

    Returns 0 if the item should be skipped (no rating and not favorited, or
    effective rating below the floor).
    """
    effective_rating = rating
    if effective_rating is None and favorite:
        effective_rating = SCENE_FAVORITED_IMPLICIT_RATING

    if effective_rating is None or effective_rating < SCENE_RATING_FLOOR:
        return 0.0

    multiplier = (effective_rating / 100) * SCENE_WEIGHT_BASE
    if favorite:
        multiplier += SCENE_WEIGHT_FAVORITE_BONUS
    return multiplier


def build_derived_weights(
    item_signals: Iterable[ItemSignal],
    projections_by_id: Mapping[str, ScoringProjection],
) -> dict[EntityKind, dict[str, float]]:
    """
    Accumulate derived entity weights from rated/favorited items.

    Weights are summed across items (not maxed). Tags only accumulate from the
    item's direct tags, not those inherited through contributors or owner.
    """
    weights: dict[EntityKind, dict[str, float]] = {kind: {} for kind in EntityKind}

    for signal in item_signals:
        multiplier = scene_weight_multiplier(signal.rating, signal.favorite)
        if multiplier <= 0:
            continue

        projection = projections_by_id.get(signal.item_id)
        if projection is None:
            continue

        contributor_weights = weights[EntityKind.CONTRIBUTOR]
        for contributor_id in projection.contributor_ids:
            contributor_weights[contributor_id] = contributor_weights.get(contributor_id, 0.0) + multiplier

        if projection.owner_id:
            owner_weights = weights[EntityKind.OWNER]
            owner_weights[projection.owner_id] = owner_weights.get(projection.owner_id, 0.0) + multiplier

        tag_weights = weights[EntityKind.TAG]
        for tag_id in projection.tag_ids:
            tag_weights[tag_id] = tag_weights.get(tag_id, 0.0) + multiplier

    return weights


def _favorites(signals: Iterable[EntitySignal]) -> frozenset[str]:
    return frozenset(s.entity_id for s in signals if s.favorite)


def _high_rated(signals: Iterable[EntitySignal]) -> frozenset[str]:
    return frozenset(
        s.entity_id for s in signals
        if s.rating is not None and s.rating >= HIGH_RATING_THRESHOLD
    )


def count_criteria(
    entity_signals: Mapping[EntityKind, list[EntitySignal]],
    item_signals: list[ItemSignal],
) -> CriteriaCounts:
    """Count the user's criteria for feedback display."""
    contributors = entity_signals.get(EntityKind.CONTRIBUTOR, [])
    owners = entity_signals.get(EntityKind.OWNER, [])
    tags = entity_signals.get(EntityKind.TAG, [])
    return CriteriaCounts(
        favorited_contributors=len(_favorites(contributors)),
        rated_contributors=len(_high_rated(contributors)),
        favorited_owners=len(_favorites(owners)),
        rated_owners=len(_high_rated(owners)),
        favorited_tags=len(_favorites(tags)),
        rated_tags=len(_high_rated(tags)),
        favorited_items=sum(1 for s in item_signals if s.favorite),
        rated_items=sum(
            1 for s in item_signals
            if s.rating is not None and s.rating >= SCENE_RATING_FLOOR
        ),
    )


def build_profile(
    entity_signals: Mapping[EntityKind, list[EntitySignal]],
    item_signals: list[ItemSignal],
    projections_by_id: Mapping[str, ScoringProjection],
) -> PreferenceProfile:
    """Combine explicit sets and derived weights into a profile."""
    derived = build_derived_weights(item_signals, projections_by_id)

    def kind_prefs(kind: EntityKind) -> KindPreferences:
        signals = entity_signals.get(kind, [])
        return KindPreferences(
            favorite=_favorites(signals),
            high_rated=_high_rated(signals),
            derived_weight={k: w for k, w in derived[kind].items() if w > 0},
        )

    return PreferenceProfile(
        contributor=kind_prefs(EntityKind.CONTRIBUTOR),
        owner=kind_prefs(EntityKind.OWNER),
        tag=kind_prefs(EntityKind.TAG),
    )


class PreferenceProfileBuilder:
    """Load a user's signals and build their preference profile."""

    def __init__(self, signal_store):
        self.signal_store = signal_store

    async def load_signals(
        self, user_id: int
    ) -> tuple[dict[EntityKind, list[EntitySignal]], list[ItemSignal]]:
        """Fetch explicit signals for every kind plus item signals concurrently."""
        kinds = list(EntityKind)
        *per_kind, item_signals = await gather_or_cancel(
            *(self.signal_store.entity_signals(user_id, kind) for kind in kinds),
            self.signal_store.item_signals(user_id),
        )
        return dict(zip(kinds, per_kind)), item_signals

    def build(
        self,
        entity_signals: Mapping[EntityKind, list[EntitySignal]],
        item_signals: list[ItemSignal],
        projections_by_id: Mapping[str, ScoringProjection],
    ) -> PreferenceProfile:
        """
        Build the profile from signals returned by ``load_signals``.

        Args:
            entity_signals: Explicit signals per relation kind
            item_signals: Scene-level signals
            projections_by_id: Visible catalog, used to resolve the relations
                of the user's rated/favorited items

        Returns:
            Read-only preference profile
        """
        profile = build_profile(entity_signals, item_signals, projections_by_id)

        logger.debug(
            f"Profile built: "
            f"{len(profile.contributor.derived_weight)} derived contributors, "
            f"{len(profile.owner.derived_weight)} derived owners, "
            f"{len(profile.tag.derived_weight)} derived tags"
        )
        return profile
