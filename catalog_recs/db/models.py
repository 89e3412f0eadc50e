"""
SQLAlchemy ORM models for the catalog and per-user preference signals.

============================================================================
CATALOG TABLES ARE MATERIALIZED UPSTREAM
============================================================================
Items, contributors, owners, tags and their association tables are written by
the catalog sync job (outside this package). The ranking engine only reads
them:

- Item: one unit of ranked content (owner_id -> Owner, soft-deleted via deleted_at)
- Contributor / ItemContributor: entities credited on an item (e.g. performers)
- Owner: single top-level grouping entity of an item (e.g. a studio)
- Tag / ItemTag: labels attached directly to an item
- ContributorTag / OwnerTag: labels inherited through a contributor or owner

User tables (EntityRating, ItemRating, WatchHistory, UserExcludedItem) hold
the signals a ranking request reads. Computed scores are never stored.
============================================================================
"""

from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, Boolean, Text, Date, DateTime,
    ForeignKey, Index, SmallInteger, CheckConstraint, Table,
)
from sqlalchemy.orm import relationship

from catalog_recs.db.database import Base


# ============ Association tables ============

item_contributors = Table(
    "item_contributors",
    Base.metadata,
    Column("item_id", String(32), ForeignKey("items.id", ondelete="CASCADE"), primary_key=True),
    Column("contributor_id", String(32), ForeignKey("contributors.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_item_contributors_contributor", "contributor_id"),
)

item_tags = Table(
    "item_tags",
    Base.metadata,
    Column("item_id", String(32), ForeignKey("items.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(32), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_item_tags_tag", "tag_id"),
)

contributor_tags = Table(
    "contributor_tags",
    Base.metadata,
    Column("contributor_id", String(32), ForeignKey("contributors.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(32), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

owner_tags = Table(
    "owner_tags",
    Base.metadata,
    Column("owner_id", String(32), ForeignKey("owners.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(32), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


# ============ Catalog Models ============

class Item(Base):
    """Catalog item metadata."""

    __tablename__ = "items"

    id = Column(String(32), primary_key=True)
    title = Column(String(500))
    details = Column(Text)
    date = Column(Date)  # Release / recording date, used as ranking tie-break
    owner_id = Column(String(32), ForeignKey("owners.id", ondelete="SET NULL"))
    engagement_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    deleted_at = Column(DateTime)

    owner = relationship("Owner", lazy="raise")
    contributors = relationship("Contributor", secondary=item_contributors, lazy="raise")
    tags = relationship("Tag", secondary=item_tags, lazy="raise")

    __table_args__ = (
        Index("idx_items_owner", "owner_id"),
        Index("idx_items_deleted_at", "deleted_at"),
    )


class Contributor(Base):
    """Contributors credited on items."""

    __tablename__ = "contributors"

    id = Column(String(32), primary_key=True)
    name = Column(String(500), nullable=False)

    tags = relationship("Tag", secondary=contributor_tags, lazy="raise")


class Owner(Base):
    """Owners (top-level grouping entity of an item)."""

    __tablename__ = "owners"

    id = Column(String(32), primary_key=True)
    name = Column(String(500), nullable=False)

    tags = relationship("Tag", secondary=owner_tags, lazy="raise")


class Tag(Base):
    """Tag labels."""

    __tablename__ = "tags"

    id = Column(String(32), primary_key=True)
    name = Column(String(250), nullable=False)

    __table_args__ = (
        Index("idx_tags_name", "name"),
    )


# ============ User Signal Models ============

class EntityRating(Base):
    """Explicit per-entity preference of a user (contributor, owner or tag)."""

    __tablename__ = "entity_ratings"

    user_id = Column(Integer, primary_key=True)
    entity_kind = Column(String(20), primary_key=True)  # "contributor", "owner", "tag"
    entity_id = Column(String(32), primary_key=True)
    favorite = Column(Boolean, default=False, nullable=False)
    rating = Column(SmallInteger)  # 0-100, NULL when unrated
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 100)", name="ck_entity_ratings_rating"),
        Index("idx_entity_ratings_user_kind", "user_id", "entity_kind"),
    )


class ItemRating(Base):
    """Scene-level rating / favorite of an item by a user."""

    __tablename__ = "item_ratings"

    user_id = Column(Integer, primary_key=True)
    item_id = Column(String(32), primary_key=True)
    favorite = Column(Boolean, default=False, nullable=False)
    rating = Column(SmallInteger)  # 0-100, NULL when unrated
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 100)", name="ck_item_ratings_rating"),
        Index("idx_item_ratings_user", "user_id"),
    )


class WatchHistory(Base):
    """Per-user interaction history of an item."""

    __tablename__ = "watch_history"

    user_id = Column(Integer, primary_key=True)
    item_id = Column(String(32), primary_key=True)
    play_count = Column(Integer, default=0, nullable=False)
    last_played_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_watch_history_user", "user_id"),
    )


class UserExcludedItem(Base):
    """Precomputed per-user exclusions (hidden by the user or restricted)."""

    __tablename__ = "user_excluded_items"

    user_id = Column(Integer, primary_key=True)
    item_id = Column(String(32), primary_key=True)
    reason = Column(String(20), nullable=False)  # "hidden", "restricted", ...
    computed_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_excluded_items_user_reason", "user_id", "reason"),
    )
