"""
Redis-backed dedup index.

Two structures are kept:
- a set of every content hash ever ingested (``dedup_set_key``)
- per content hash, a set of the source identifiers that produced it
  (``{sequence_prefix}:{hash}``)

Both only grow. Writes are set unions, so replaying a page after a crash
converges on the same state.
"""

from __future__ import annotations

from typing import Any, FrozenSet, Iterable, List, Sequence, Union

import structlog
from redis.exceptions import RedisError

from seqharvest.config.config import RedisConfig
from seqharvest.errors import ReconciliationLookupFailed, StoreWriteFailed

logger = structlog.get_logger(__name__)


def _decode_members(members: Iterable[Union[str, bytes]]) -> FrozenSet[str]:
    return frozenset(m.decode("utf-8") if isinstance(m, bytes) else m for m in members)


class DedupIndex:
    """
    Maps content hashes to the set of source identifiers sharing that sequence.

    The index is written only by the harvester and read by the reconciler.
    No deletion is exposed: entries live as long as the corpus.
    """

    def __init__(self, client: Any, config: RedisConfig):
        """
        Args:
            client: ``redis.asyncio.Redis`` (or compatible) client
            config: Redis key layout
        """
        self._client = client
        self.dedup_set_key = config.dedup_set_key
        self.sequence_prefix = config.sequence_prefix

    def key_for(self, content_hash: str) -> str:
        return f"{self.sequence_prefix}:{content_hash}"

    async def has_hash(self, content_hash: str) -> bool:
        try:
            return bool(await self._client.sismember(self.dedup_set_key, content_hash))
        except (RedisError, OSError) as e:
            raise ReconciliationLookupFailed(f"dedup index unreachable: {e}") from e

    async def add_identifier(self, content_hash: str, identifier: str) -> None:
        """
        Record that ``identifier`` produced the sequence behind ``content_hash``.

        The hash-set and per-hash-set additions go through one MULTI/EXEC so a
        hash is never visible in one structure without the other.
        """
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.sadd(self.dedup_set_key, content_hash)
                pipe.sadd(self.key_for(content_hash), identifier)
                await pipe.execute()
        except (RedisError, OSError) as e:
            logger.error("Dedup index write failed", content_hash=content_hash, identifier=identifier, error=str(e))
            raise StoreWriteFailed(f"couldn't add {identifier} to dedup entry {content_hash}: {e}") from e

    async def identifiers_for(self, content_hash: str) -> FrozenSet[str]:
        """Return the identifiers for a hash, or an empty set if it is unknown."""
        return (await self.identifiers_for_many([content_hash]))[0]

    async def identifiers_for_many(self, content_hashes: Sequence[str]) -> List[FrozenSet[str]]:
        """Pipelined lookup; the result is aligned with ``content_hashes``."""
        if not content_hashes:
            return []

        try:
            async with self._client.pipeline(transaction=False) as pipe:
                for content_hash in content_hashes:
                    pipe.smembers(self.key_for(content_hash))
                replies = await pipe.execute()
        except (RedisError, OSError) as e:
            raise ReconciliationLookupFailed(f"dedup index unreachable: {e}") from e

        return [_decode_members(reply or ()) for reply in replies]

    async def count(self) -> int:
        """Number of unique content hashes ingested so far."""
        try:
            return int(await self._client.scard(self.dedup_set_key))
        except (RedisError, OSError) as e:
            raise ReconciliationLookupFailed(f"dedup index unreachable: {e}") from e
