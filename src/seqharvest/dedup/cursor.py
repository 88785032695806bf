"""
Durable ingestion cursor.

A single Redis integer counting the upstream records already committed. Only
the harvester advances it, and only after every write for a page succeeded.
"""

from __future__ import annotations

from typing import Any

import structlog
from redis.exceptions import RedisError

from seqharvest.config.config import RedisConfig
from seqharvest.errors import CursorAdvanceFailed, CursorReadFailed

logger = structlog.get_logger(__name__)


class CursorStore:
    """Reads, initialises and advances the ingestion offset."""

    def __init__(self, client: Any, config: RedisConfig):
        self._client = client
        self.key = config.offset_key

    async def ensure(self) -> int:
        """Create the cursor at 0 if it does not exist yet and return its value."""
        try:
            created = await self._client.setnx(self.key, 0)
        except (RedisError, OSError) as e:
            raise CursorReadFailed(f"couldn't set initial offset value: {e}") from e

        if created:
            logger.info("No offset value, setting it to 0", key=self.key)
            return 0

        offset = await self.get()
        logger.info("Starting at offset", offset=offset, key=self.key)
        return offset

    async def get(self) -> int:
        try:
            value = await self._client.get(self.key)
        except (RedisError, OSError) as e:
            raise CursorReadFailed(f"couldn't get offset value: {e}") from e

        if value is None:
            return 0
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise CursorReadFailed(f"offset value {value!r} is not an integer") from e

    async def advance(self, count: int) -> int:
        """
        Atomically add ``count`` to the cursor.

        Returns:
            The new cursor value
        """
        if count < 0:
            raise ValueError("cursor can only move forward")

        try:
            return int(await self._client.incrby(self.key, count))
        except (RedisError, OSError) as e:
            logger.error("Couldn't update offset with new records", count=count, error=str(e))
            raise CursorAdvanceFailed(f"couldn't advance offset by {count}: {e}") from e
