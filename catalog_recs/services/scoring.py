"""
Scoring engine.

Pure functions only: a personalized affinity score of one projection against a
preference profile, and an overlap score of one projection against a
reference item. Nothing here touches the database, so items can be scored
independently (and on worker threads) against a shared read-only profile.
"""

import math
from datetime import datetime, timezone
from enum import IntEnum
from typing import Mapping, Optional

from catalog_recs.services.preference_profile import KindPreferences, PreferenceProfile
from catalog_recs.services.projection_store import ScoringProjection
from catalog_recs.services.signals import WatchRecord

# Explicit entity scoring weights
CONTRIBUTOR_FAVORITE_POINTS = 5
CONTRIBUTOR_RATED_POINTS = 3
OWNER_FAVORITE_POINTS = 3
OWNER_RATED_POINTS = 2
TAG_DIRECT_FAVORITE_POINTS = 1.0
TAG_DIRECT_RATED_POINTS = 0.5
TAG_CONTRIBUTOR_FAVORITE_POINTS = 0.3
TAG_CONTRIBUTOR_RATED_POINTS = 0.15
TAG_OWNER_FAVORITE_POINTS = 0.5
TAG_OWNER_RATED_POINTS = 0.25

# Interaction recency bands (days since last play)
NEVER_WATCHED_BONUS = 30
NOT_RECENT_BONUS = 20
RECENT_PENALTY = -10
VERY_RECENT_PENALTY = -30
NOT_RECENT_AFTER_DAYS = 14
VERY_RECENT_WITHIN_DAYS = 1

# Engagement quality multiplier
ENGAGEMENT_CAP = 10
ENGAGEMENT_STEP = 0.03

# Similarity overlap weights
SIMILAR_CONTRIBUTOR_WEIGHT = 3
SIMILAR_OWNER_WEIGHT = 2
SIMILAR_TAG_WEIGHT = 1


class TagSource(IntEnum):
    """Most specific place a tag was found on an item (lower is more specific)."""
    DIRECT = 0
    CONTRIBUTOR = 1
    OWNER = 2


TAG_SOURCE_POINTS = {
    TagSource.DIRECT: (TAG_DIRECT_FAVORITE_POINTS, TAG_DIRECT_RATED_POINTS),
    TagSource.CONTRIBUTOR: (TAG_CONTRIBUTOR_FAVORITE_POINTS, TAG_CONTRIBUTOR_RATED_POINTS),
    TagSource.OWNER: (TAG_OWNER_FAVORITE_POINTS, TAG_OWNER_RATED_POINTS),
}


def resolve_tag_sources(projection: ScoringProjection) -> dict[str, TagSource]:
    """Map every tag on the item to its most specific source."""
    sources: dict[str, TagSource] = {}
    for source, tag_ids in (
        (TagSource.DIRECT, projection.tag_ids),
        (TagSource.CONTRIBUTOR, projection.contributor_tag_ids),
        (TagSource.OWNER, projection.owner_tag_ids),
    ):
        for tag_id in tag_ids:
            if tag_id not in sources:
                sources[tag_id] = source
    return sources


def _diminishing(points: float, amount: float) -> float:
    return points * math.sqrt(amount) if amount > 0 else 0.0


def _partition(ids, prefs: KindPreferences) -> tuple[int, int, float]:
    """(favorite count, high-rated-but-not-favorite count, summed derived weight)."""
    favorite_count = 0
    rated_count = 0
    derived = 0.0
    for entity_id in ids:
        if entity_id in prefs.favorite:
            favorite_count += 1
        elif entity_id in prefs.high_rated:
            rated_count += 1
        derived += prefs.derived_weight.get(entity_id, 0.0)
    return favorite_count, rated_count, derived


def _kind_score(ids, prefs: KindPreferences, favorite_points: float, rated_points: float) -> float:
    favorite_count, rated_count, derived = _partition(ids, prefs)
    return (
        _diminishing(favorite_points, favorite_count)
        + _diminishing(rated_points, rated_count)
        + _diminishing(favorite_points, derived)
    )


def _tag_score(projection: ScoringProjection, prefs: KindPreferences) -> float:
    favorite_counts = {source: 0 for source in TagSource}
    rated_counts = {source: 0 for source in TagSource}

    for tag_id, source in resolve_tag_sources(projection).items():
        if tag_id in prefs.favorite:
            favorite_counts[source] += 1
        elif tag_id in prefs.high_rated:
            rated_counts[source] += 1

    score = 0.0
    for source, (favorite_points, rated_points) in TAG_SOURCE_POINTS.items():
        score += _diminishing(favorite_points, favorite_counts[source])
        score += _diminishing(rated_points, rated_counts[source])

    # Derived tag weight only accumulates from direct tags
    derived = sum(prefs.derived_weight.get(tag_id, 0.0) for tag_id in projection.tag_ids)
    return score + _diminishing(TAG_DIRECT_FAVORITE_POINTS, derived)


def base_score(projection: ScoringProjection, profile: PreferenceProfile) -> float:
    """Affinity of an item before recency and engagement adjustments."""
    owner_ids = (projection.owner_id,) if projection.owner_id else ()
    return (
        _kind_score(
            projection.contributor_ids, profile.contributor,
            CONTRIBUTOR_FAVORITE_POINTS, CONTRIBUTOR_RATED_POINTS,
        )
        + _kind_score(owner_ids, profile.owner, OWNER_FAVORITE_POINTS, OWNER_RATED_POINTS)
        + _tag_score(projection, profile.tag)
    )


def temporal_modifier(record: Optional[WatchRecord], now: datetime) -> float:
    """Additive adjustment from how recently the user interacted with the item."""
    if record is None or record.play_count <= 0:
        return NEVER_WATCHED_BONUS
    if record.last_played_at is None:
        return 0.0

    last_played = record.last_played_at
    if last_played.tzinfo is None:
        last_played = last_played.replace(tzinfo=timezone.utc)
    days_since = (now - last_played).total_seconds() / 86400

    if days_since > NOT_RECENT_AFTER_DAYS:
        return NOT_RECENT_BONUS
    if days_since >= VERY_RECENT_WITHIN_DAYS:
        return RECENT_PENALTY
    return VERY_RECENT_PENALTY


def engagement_multiplier(engagement_count: int) -> float:
    return 1.0 + min(max(engagement_count, 0), ENGAGEMENT_CAP) * ENGAGEMENT_STEP


def personalized_score(
    projection: ScoringProjection,
    profile: PreferenceProfile,
    watch_history: Mapping[str, WatchRecord],
    now: datetime,
) -> float:
    """
    Final personalized score. Zero means "not ranked".

    Items matching nothing in the profile are dropped before the recency
    bonus is applied; negative finals are clamped to zero.
    """
    base = base_score(projection, profile)
    if base == 0:
        return 0.0

    adjusted = base + temporal_modifier(watch_history.get(projection.id), now)
    final = adjusted * engagement_multiplier(projection.engagement_count)
    return final if final > 0 else 0.0


def has_relations(projection: ScoringProjection) -> bool:
    return bool(projection.contributor_ids or projection.owner_id or projection.tag_ids)


def similarity_score(item: ScoringProjection, reference: ScoringProjection) -> float:
    """Weighted relation overlap with the reference item (no diminishing returns)."""
    score = SIMILAR_CONTRIBUTOR_WEIGHT * len(item.contributor_ids & reference.contributor_ids)
    if item.owner_id and item.owner_id == reference.owner_id:
        score += SIMILAR_OWNER_WEIGHT
    score += SIMILAR_TAG_WEIGHT * len(item.tag_ids & reference.tag_ids)
    return float(score)
