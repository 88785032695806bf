"""
Resumable ingestion loop.

One cycle moves through FETCHING -> PARSING -> STORING -> ADVANCING. The
cursor is advanced only after every store and index write for the page has
succeeded, so a failure or cancellation anywhere earlier leaves the cursor
where it was and the next run replays the page. Replays are safe because
every write is keyed by content hash and every index update is a set union:
delivery is at-least-once, never lossy.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

import structlog
from structlog.contextvars import bound_contextvars

from seqharvest.config.config import HarvestConfig
from seqharvest.dedup.cursor import CursorStore
from seqharvest.dedup.hasher import content_hash, normalize_sequence
from seqharvest.dedup.index import DedupIndex
from seqharvest.errors import SeqHarvestError
from seqharvest.observability import gauge, increment
from seqharvest.protocols import CycleResult, HarvesterState, RecordSource, SleepScheduler, SourceRecord
from seqharvest.storage.sequence_store import SequenceStore

logger = structlog.get_logger(__name__)


class Harvester:
    """Drives pagination of the upstream source into the dedup stores."""

    def __init__(
        self,
        source: RecordSource,
        sequence_store: SequenceStore,
        dedup_index: DedupIndex,
        cursor_store: CursorStore,
        scheduler: SleepScheduler,
        page_size: int,
        config: HarvestConfig,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")

        self.source = source
        self.sequence_store = sequence_store
        self.dedup_index = dedup_index
        self.cursor_store = cursor_store
        self.scheduler = scheduler
        self.page_size = page_size
        self.config = config

        self.state = HarvesterState.IDLE
        gauge("harvester_state", 1, labels={"state": self.state.value})
        self.cursor: Optional[int] = None
        self.cycles_completed = 0

    def _set_state(self, state: HarvesterState) -> None:
        if state is self.state:
            return
        gauge("harvester_state", 0, labels={"state": self.state.value})
        gauge("harvester_state", 1, labels={"state": state.value})
        self.state = state

    async def _store_sequence(
        self, digest: str, normalized: str, identifiers: List[str], semaphore: asyncio.Semaphore
    ) -> bool:
        async with semaphore:
            # File first: an indexed hash must always have its sequence file
            written = await self.sequence_store.write_if_absent(digest, normalized)
            for identifier in identifiers:
                await self.dedup_index.add_identifier(digest, identifier)
        return written

    async def _store_page(self, records: List[SourceRecord]) -> int:
        """
        Store and index every record of a page.

        Writes are independent and commutative, so they run concurrently;
        the page completes only when all of them have.

        Returns:
            Number of new sequence files written
        """
        # Records sharing a sequence within the page collapse onto one write
        grouped: Dict[str, Tuple[str, List[str]]] = {}
        for record in records:
            normalized = normalize_sequence(record.raw_sequence)
            digest = content_hash(normalized)
            grouped.setdefault(digest, (normalized, []))[1].append(record.identifier)

        semaphore = asyncio.Semaphore(self.config.store_concurrency)
        tasks = [
            asyncio.ensure_future(self._store_sequence(digest, normalized, identifiers, semaphore))
            for digest, (normalized, identifiers) in grouped.items()
        ]
        try:
            written = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return sum(1 for was_written in written if was_written)

    async def run_cycle(self) -> CycleResult:
        """
        Fetch, store and commit one page at the current cursor.

        Raises:
            UpstreamUnavailable, MalformedRecord, StoreWriteFailed,
            CursorReadFailed, CursorAdvanceFailed
        """
        if self.cursor is None:
            self.cursor = await self.cursor_store.ensure()
        offset = self.cursor

        with bound_contextvars(cycle_id=uuid4().hex[:12]):
            started = time.monotonic()
            try:
                self._set_state(HarvesterState.FETCHING)
                payload = await self.source.fetch_page(limit=self.page_size, offset=offset)

                self._set_state(HarvesterState.PARSING)
                records = self.source.parse_page(payload)
                logger.info("Parsed page", offset=offset, records=len(records))

                self._set_state(HarvesterState.STORING)
                new_sequences = await self._store_page(records)

                self._set_state(HarvesterState.ADVANCING)
                if records:
                    logger.info("Incrementing offset", by=len(records))
                    cursor = await self.cursor_store.advance(len(records))
                    if cursor != offset + len(records):
                        logger.warning(
                            "Cursor moved unexpectedly", expected=offset + len(records), actual=cursor
                        )
                else:
                    cursor = offset
            except SeqHarvestError as e:
                increment("harvest_cycles", labels={"outcome": type(e).__name__})
                logger.error("Harvest cycle failed", offset=offset, state=self.state.value, error=str(e))
                self._set_state(HarvesterState.IDLE)
                raise
            except asyncio.CancelledError:
                logger.info("Harvest cycle cancelled", offset=offset, state=self.state.value)
                self._set_state(HarvesterState.IDLE)
                raise

            self.cursor = cursor
            self.cycles_completed += 1

            increment("harvest_cycles", labels={"outcome": "ok"})
            increment("records_ingested", len(records))
            increment("sequences_new", new_sequences)
            gauge("harvest_cursor", cursor)

            result = CycleResult(
                offset=offset,
                fetched=len(records),
                new_sequences=new_sequences,
                cursor=cursor,
                drained=len(records) < self.page_size,
            )
            logger.info(
                "Harvest cycle committed",
                offset=offset,
                fetched=result.fetched,
                new_sequences=new_sequences,
                cursor=cursor,
                drained=result.drained,
                duration_seconds=round(time.monotonic() - started, 3),
            )
            return result

    def delay_after(self, result: CycleResult) -> float:
        """A partial page means the upstream is drained: poll slowly. A full page means backlog: poll fast."""
        if result.drained:
            return self.config.drained_sleep_seconds
        return self.config.backlog_sleep_seconds

    async def run(self, max_cycles: Optional[int] = None) -> int:
        """
        Run cycles until the scheduler is cancelled or ``max_cycles`` is reached.

        Any cycle error propagates; the durable cursor makes a process restart
        resume from the last committed page.

        Returns:
            Number of cycles completed by this call
        """
        self.cursor = await self.cursor_store.ensure()
        gauge("harvest_cursor", self.cursor)

        completed = 0
        while not self.scheduler.cancelled:
            result = await self.run_cycle()
            completed += 1
            if max_cycles is not None and completed >= max_cycles:
                self._set_state(HarvesterState.IDLE)
                break

            delay = self.delay_after(result)
            if result.drained:
                logger.info("Got fewer sequences than limit, sleeping", seconds=delay)
            else:
                logger.info("Going again after a short sleep", seconds=delay)

            self._set_state(HarvesterState.SLEEPING)
            if not await self.scheduler.sleep(delay):
                logger.info("Harvester sleep cancelled")
            self._set_state(HarvesterState.IDLE)

        return completed
