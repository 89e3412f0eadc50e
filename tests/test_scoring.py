import math
from datetime import datetime, timedelta

import pytest

from catalog_recs.services.preference_profile import KindPreferences, PreferenceProfile
from catalog_recs.services.scoring import (
    TagSource,
    base_score,
    engagement_multiplier,
    has_relations,
    personalized_score,
    resolve_tag_sources,
    similarity_score,
    temporal_modifier,
)
from catalog_recs.services.signals import WatchRecord
from conftest import NOW


def _prefs(favorite=(), high_rated=(), derived=None):
    return KindPreferences(
        favorite=frozenset(favorite),
        high_rated=frozenset(high_rated),
        derived_weight=derived or {},
    )


def test_favorite_contributors_have_diminishing_returns(make_projection):
    profile = PreferenceProfile(contributor=_prefs(favorite={"c1", "c2"}))

    one = base_score(make_projection("a", contributors={"c1"}), profile)
    two = base_score(make_projection("b", contributors={"c1", "c2"}), profile)

    assert one == pytest.approx(5)
    assert two == pytest.approx(5 * math.sqrt(2))
    # Doubling the matches does not double the component
    assert two < 2 * one


def test_high_rated_excludes_ids_already_counted_as_favorite(make_projection):
    profile = PreferenceProfile(contributor=_prefs(favorite={"c1"}, high_rated={"c1", "c2"}))

    score = base_score(make_projection("a", contributors={"c1", "c2"}), profile)

    # c1 counts once as favorite (5), c2 as high-rated (3)
    assert score == pytest.approx(5 + 3)


def test_owner_points(make_projection):
    favorite = PreferenceProfile(owner=_prefs(favorite={"o1"}))
    rated = PreferenceProfile(owner=_prefs(high_rated={"o1"}))
    item = make_projection("a", owner="o1")

    assert base_score(item, favorite) == pytest.approx(3)
    assert base_score(item, rated) == pytest.approx(2)


def test_derived_weight_is_additive_to_explicit_matches(make_projection):
    profile = PreferenceProfile(contributor=_prefs(favorite={"c1"}, derived={"c1": 0.25, "c2": 0.75}))

    score = base_score(make_projection("a", contributors={"c1", "c2"}), profile)

    # Explicit favorite plus 5 * sqrt(0.25 + 0.75)
    assert score == pytest.approx(5 + 5)


def test_tag_sources_resolve_to_most_specific(make_projection):
    item = make_projection(
        "a",
        tags={"t1"},
        contributor_tags={"t1", "t2"},
        owner_tags={"t1", "t2", "t3"},
    )

    assert resolve_tag_sources(item) == {
        "t1": TagSource.DIRECT,
        "t2": TagSource.CONTRIBUTOR,
        "t3": TagSource.OWNER,
    }


def test_tag_is_counted_only_through_most_specific_source(make_projection):
    profile = PreferenceProfile(tag=_prefs(favorite={"t1", "t2", "t3"}))
    item = make_projection(
        "a",
        tags={"t1"},
        contributor_tags={"t1", "t2"},
        owner_tags={"t1", "t3"},
    )

    # direct 1.0 + via contributor 0.3 + via owner 0.5, t1 never re-counted
    assert base_score(item, profile) == pytest.approx(1.0 + 0.3 + 0.5)


def test_rated_tag_points_per_source(make_projection):
    profile = PreferenceProfile(tag=_prefs(high_rated={"t1", "t2", "t3"}))
    item = make_projection("a", tags={"t1"}, contributor_tags={"t2"}, owner_tags={"t3"})

    assert base_score(item, profile) == pytest.approx(0.5 + 0.15 + 0.25)


def test_derived_tag_weight_only_reads_direct_tags(make_projection):
    profile = PreferenceProfile(tag=_prefs(derived={"t1": 4.0}))

    direct = make_projection("a", tags={"t1"})
    inherited = make_projection("b", contributor_tags={"t1"}, owner_tags={"t1"})

    assert base_score(direct, profile) == pytest.approx(2.0)
    assert base_score(inherited, profile) == 0


@pytest.mark.parametrize(
    "record, expected",
    [
        (None, 30),
        (WatchRecord("a", play_count=0, last_played_at=NOW - timedelta(hours=1)), 30),
        (WatchRecord("a", play_count=3, last_played_at=NOW - timedelta(days=20)), 20),
        (WatchRecord("a", play_count=3, last_played_at=NOW - timedelta(days=14)), -10),
        (WatchRecord("a", play_count=3, last_played_at=NOW - timedelta(days=5)), -10),
        (WatchRecord("a", play_count=3, last_played_at=NOW - timedelta(days=1)), -10),
        (WatchRecord("a", play_count=3, last_played_at=NOW - timedelta(hours=2)), -30),
        (WatchRecord("a", play_count=3, last_played_at=None), 0),
    ],
)
def test_temporal_modifier_bands(record, expected):
    assert temporal_modifier(record, NOW) == expected


def test_temporal_modifier_treats_naive_timestamps_as_utc():
    naive = datetime(2026, 1, 1, 12, 0)
    record = WatchRecord("a", play_count=1, last_played_at=naive)

    assert temporal_modifier(record, NOW) == 20


def test_engagement_multiplier_is_capped():
    assert engagement_multiplier(0) == pytest.approx(1.0)
    assert engagement_multiplier(5) == pytest.approx(1.15)
    assert engagement_multiplier(10) == pytest.approx(1.3)
    assert engagement_multiplier(250) == pytest.approx(1.3)


def test_unmatched_item_scores_zero_despite_recency_bonus(make_projection):
    profile = PreferenceProfile(contributor=_prefs(favorite={"c1"}))

    # Never-watched bonus alone must not rank an item
    assert personalized_score(make_projection("a", contributors={"c9"}), profile, {}, NOW) == 0


def test_personalized_score_combines_recency_and_engagement(make_projection):
    profile = PreferenceProfile(owner=_prefs(favorite={"o1"}))
    item = make_projection("a", owner="o1", engagement=5)
    history = {"a": WatchRecord("a", play_count=2, last_played_at=NOW - timedelta(days=30))}

    assert personalized_score(item, profile, history, NOW) == pytest.approx((3 + 20) * 1.15)


def test_very_recent_interaction_can_drop_item(make_projection):
    profile = PreferenceProfile(owner=_prefs(favorite={"o1"}))
    item = make_projection("a", owner="o1")
    history = {"a": WatchRecord("a", play_count=1, last_played_at=NOW - timedelta(minutes=10))}

    # 3 - 30 is negative, clamped to "not ranked"
    assert personalized_score(item, profile, history, NOW) == 0


def test_similarity_score_is_weighted_overlap(make_projection):
    reference = make_projection("r", contributors={"c1", "c2"}, owner="o1", tags={"t1", "t2"})
    item = make_projection("a", contributors={"c1", "c2", "c3"}, owner="o1", tags={"t2", "t9"})

    assert similarity_score(item, reference) == 3 * 2 + 2 + 1


def test_similarity_ignores_inherited_tags_and_missing_owner(make_projection):
    reference = make_projection("r", tags={"t1"})
    item = make_projection("a", contributor_tags={"t1"}, owner_tags={"t1"})

    assert similarity_score(item, reference) == 0


def test_has_relations(make_projection):
    assert not has_relations(make_projection("a"))
    # Inherited tags alone are not relations of the item
    assert not has_relations(make_projection("a", contributor_tags={"t1"}))
    assert has_relations(make_projection("a", owner="o1"))
    assert has_relations(make_projection("a", tags={"t1"}))
