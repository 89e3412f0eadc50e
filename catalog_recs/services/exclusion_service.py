"""Per-user item visibility backed by precomputed exclusions."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_recs.core.exceptions import ProjectionUnavailable
from catalog_recs.db.models import UserExcludedItem

logger = logging.getLogger(__name__)

HIDDEN_REASON = "hidden"


class ExclusionService:
    """Reads the ``user_excluded_items`` table maintained by the permission layer."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def excluded_ids(self, user_id: int, hidden_only: bool = False) -> set[str]:
        """
        Get all item IDs the user must not see.

        Args:
            user_id: Requesting user
            hidden_only: Only return items the user hid themselves, ignoring
                restriction-based exclusions

        Returns:
            Set of excluded item IDs
        """
        query = select(UserExcludedItem.item_id).where(UserExcludedItem.user_id == user_id)
        if hidden_only:
            query = query.where(UserExcludedItem.reason == HIDDEN_REASON)

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return {str(row[0]) for row in result.all()}
        except SQLAlchemyError as e:
            logger.error(f"Failed to load exclusions for user {user_id}: {e}")
            raise ProjectionUnavailable("Visible catalog could not be resolved") from e
