"""
Dependency container for SeqHarvest components.

Everything is constructed once from an explicit Config. The Redis client is
owned here and injected into the dedup index, cursor store and reconciler,
so tests can hand in a fake client instead.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from seqharvest.config import Config
from seqharvest.dedup.cursor import CursorStore
from seqharvest.dedup.index import DedupIndex
from seqharvest.errors import StoreError
from seqharvest.harvester.harvester import Harvester
from seqharvest.harvester.scheduler import Scheduler
from seqharvest.harvester.sparql import SparqlSource
from seqharvest.search.blast import BlastRunner
from seqharvest.search.corpus import CorpusBuilder
from seqharvest.search.reconciler import Reconciler
from seqharvest.search.service import SearchService
from seqharvest.storage.sequence_store import SequenceStore


class DependencyContainer:
    """Builds and owns the lifecycle of every SeqHarvest component."""

    def __init__(self, config: Config, redis_client: Optional[Any] = None) -> None:
        self.config = config
        self.logger = structlog.get_logger(self.__class__.__name__)

        self._owns_client = redis_client is None
        self.redis = redis_client or aioredis.from_url(
            config.redis.url,
            decode_responses=True,
            socket_connect_timeout=config.redis.socket_timeout,
            socket_timeout=config.redis.socket_timeout,
        )

        self.dedup_index = DedupIndex(self.redis, config.redis)
        self.cursor_store = CursorStore(self.redis, config.redis)
        self.sequence_store = SequenceStore(config.storage)
        self.scheduler = Scheduler()
        self.source = SparqlSource(config.upstream)
        self.harvester = Harvester(
            source=self.source,
            sequence_store=self.sequence_store,
            dedup_index=self.dedup_index,
            cursor_store=self.cursor_store,
            scheduler=self.scheduler,
            page_size=config.upstream.result_limit,
            config=config.harvest,
        )
        self.blast = BlastRunner(config.blast)
        self.reconciler = Reconciler(self.dedup_index)
        self.search_service = SearchService(self.blast, self.reconciler)
        self.corpus_builder = CorpusBuilder(config.blast, self.sequence_store)

    async def wait_for_store(self) -> None:
        """Ping Redis with exponential backoff until it answers."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.redis.connect_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
                retry=retry_if_exception_type((RedisError, OSError)),
                reraise=True,
            ):
                with attempt:
                    self.logger.info(
                        "Connecting to redis", url=self.config.redis.url, attempt=attempt.retry_state.attempt_number
                    )
                    await self.redis.ping()
        except (RedisError, OSError) as e:
            raise StoreError(f"couldn't reach redis at {self.config.redis.url}: {e}") from e

    async def initialize(self) -> None:
        await self.wait_for_store()
        await self.sequence_store.initialize()
        await self.source.initialize()
        self.logger.info("Dependency container initialized")

    async def shutdown(self) -> None:
        self.scheduler.cancel()
        await self.source.close()
        if self._owns_client:
            await self.redis.aclose()
        self.logger.info("Dependency container shut down")

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator[DependencyContainer]:
        """Initialize on entry and release connections on exit."""
        try:
            await self.initialize()
            yield self
        finally:
            await self.shutdown()

    async def get_status(self) -> Dict[str, Any]:
        """Ingestion progress for health checks and the status command."""
        return {
            "cursor": await self.cursor_store.get(),
            "unique_sequences": await self.dedup_index.count(),
            "sequence_files": await asyncio.get_running_loop().run_in_executor(None, self.sequence_store.count),
            "harvester_state": self.harvester.state.value,
        }
