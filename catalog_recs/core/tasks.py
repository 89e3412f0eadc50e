"""Concurrent I/O helpers for a single ranking request."""

import asyncio
import logging
from typing import Any, Awaitable

logger = logging.getLogger(__name__)


async def gather_or_cancel(*aws: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently and return their results in order.

    Unlike a bare ``asyncio.gather``, the first failure cancels the siblings
    and waits for them to unwind, so their DB sessions are released before
    the error reaches the caller.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug(f"Cancelling {len(pending)} sibling loads after failure")
            await asyncio.gather(*pending, return_exceptions=True)
        raise
