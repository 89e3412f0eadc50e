"""Collaborators consumed by the ranking pipeline.

The SQL-backed implementations live next to this module; tests and other
deployments can plug in anything that satisfies these protocols.
"""

from typing import Any, Optional, Protocol, Sequence

from catalog_recs.services.projection_store import ScoringProjection
from catalog_recs.services.signals import EntityKind, EntitySignal, ItemSignal, WatchRecord


class VisibilityPredicate(Protocol):
    async def excluded_ids(self, user_id: int, hidden_only: bool = False) -> set[str]: ...


class ProjectionStore(Protocol):
    async def load_projections(self) -> list[ScoringProjection]: ...

    async def load_projection(self, item_id: str) -> Optional[ScoringProjection]: ...


class SignalStore(Protocol):
    async def entity_signals(self, user_id: int, kind: EntityKind) -> list[EntitySignal]: ...

    async def item_signals(self, user_id: int) -> list[ItemSignal]: ...

    async def watch_history(self, user_id: int) -> dict[str, WatchRecord]: ...


class HydrationGateway(Protocol):
    """Returns full entities (each exposing ``.id``) in no particular order."""

    async def fetch_by_ids(self, user_id: int, ids: Sequence[str]) -> list[Any]: ...
