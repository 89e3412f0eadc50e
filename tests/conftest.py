"""Shared fixtures: in-memory collaborators for the ranking pipeline."""

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from catalog_recs.config import Settings
from catalog_recs.services.projection_store import ScoringProjection
from catalog_recs.services.ranking import RankingPipeline

NOW = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


def _projection(
    item_id,
    contributors=(),
    owner=None,
    tags=(),
    contributor_tags=(),
    owner_tags=(),
    engagement=0,
    occurred_on=None,
):
    return ScoringProjection(
        id=item_id,
        owner_id=owner,
        contributor_ids=frozenset(contributors),
        tag_ids=frozenset(tags),
        contributor_tag_ids=frozenset(contributor_tags),
        owner_tag_ids=frozenset(owner_tags),
        engagement_count=engagement,
        occurred_on=occurred_on,
    )


@dataclass
class HydratedItem:
    id: str


class FakeVisibility:
    def __init__(self, excluded=(), error=None):
        self.excluded = set(excluded)
        self.error = error
        self.calls = []

    async def excluded_ids(self, user_id, hidden_only=False):
        self.calls.append((user_id, hidden_only))
        if self.error:
            raise self.error
        return set(self.excluded)


class FakeProjectionStore:
    def __init__(self, projections=(), error=None):
        self.projections = list(projections)
        self.error = error

    async def load_projections(self):
        if self.error:
            raise self.error
        return list(self.projections)

    async def load_projection(self, item_id):
        if self.error:
            raise self.error
        return next((p for p in self.projections if p.id == item_id), None)


class FakeSignalStore:
    def __init__(self, entity_signals=None, item_signals=(), watch_history=None, error=None):
        self._entity_signals = entity_signals or {}
        self._item_signals = list(item_signals)
        self._watch_history = watch_history or {}
        self.error = error

    async def entity_signals(self, user_id, kind):
        if self.error:
            raise self.error
        return list(self._entity_signals.get(kind, []))

    async def item_signals(self, user_id):
        if self.error:
            raise self.error
        return list(self._item_signals)

    async def watch_history(self, user_id):
        if self.error:
            raise self.error
        return dict(self._watch_history)


class FakeHydration:
    """Returns entities in reverse-id order, never in the requested order."""

    def __init__(self, missing=(), reverse=True, error=None, factory=HydratedItem):
        self.missing = set(missing)
        self.reverse = reverse
        self.error = error
        self.factory = factory
        self.calls = []

    async def fetch_by_ids(self, user_id, ids):
        self.calls.append(list(ids))
        if self.error:
            raise self.error
        found = [self.factory(i) for i in ids if i not in self.missing]
        if self.reverse:
            return sorted(found, key=lambda e: e.id, reverse=True)
        return found


@pytest.fixture
def make_projection():
    return _projection


@pytest.fixture
def settings():
    # Small catalogs in tests always take the serial scoring path
    return Settings(scoring_shard_threshold=5000, scoring_workers=1)


@pytest.fixture
def make_pipeline(settings):
    def _make(
        projections=(),
        *,
        excluded=(),
        entity_signals=None,
        item_signals=(),
        watch_history=None,
        visibility=None,
        projection_store=None,
        signal_store=None,
        hydration=None,
        settings_override=None,
    ):
        return RankingPipeline(
            visibility=visibility or FakeVisibility(excluded),
            projection_store=projection_store or FakeProjectionStore(projections),
            signal_store=signal_store or FakeSignalStore(entity_signals, item_signals, watch_history),
            hydration=hydration or FakeHydration(),
            settings=settings_override or settings,
            clock=lambda: NOW,
        )

    return _make
