"""Pydantic schemas for API request/response validation."""

from datetime import date
from pydantic import BaseModel, Field


# ============ Catalog Schemas ============

class EntityRef(BaseModel):
    """Contributor, owner or tag reference."""
    id: str
    name: str


class ItemSummary(BaseModel):
    """Hydrated catalog item with the requesting user's data merged in."""
    id: str
    title: str | None = None
    details: str | None = None
    occurred_on: date | None = None
    engagement_count: int = 0
    owner: EntityRef | None = None
    contributors: list[EntityRef] = []
    tags: list[EntityRef] = []
    # Per-user data
    rating: int | None = None  # 0-100
    favorite: bool = False
    play_count: int = 0


# ============ Recommendation Schemas ============

class CriteriaCountsResponse(BaseModel):
    """User signal counts, explaining why nothing could be recommended."""
    favorited_contributors: int = 0
    rated_contributors: int = 0
    favorited_owners: int = 0
    rated_owners: int = 0
    favorited_tags: int = 0
    rated_tags: int = 0
    favorited_items: int = 0
    rated_items: int = 0


class RankedPageResponse(BaseModel):
    """One page of ranked items."""
    items: list[ItemSummary]
    total_match_count: int = Field(description="Ranked candidates before pagination")
    page: int
    per_page: int
    diagnostic_counts: CriteriaCountsResponse | None = None
    message: str | None = None
