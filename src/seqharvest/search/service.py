"""
Query path: run the search tool, then reconcile its hits.
"""

from __future__ import annotations

import time

import structlog

from seqharvest.errors import SeqHarvestError
from seqharvest.observability import histogram, increment
from seqharvest.protocols import SearchResults, SearchTool
from seqharvest.search.reconciler import Reconciler

logger = structlog.get_logger(__name__)


class SearchService:
    """Runs a similarity search and maps hits to source identifiers."""

    def __init__(self, tool: SearchTool, reconciler: Reconciler):
        self.tool = tool
        self.reconciler = reconciler

    async def search(self, sequence: str) -> SearchResults:
        """
        Raises:
            ValueError: the query is empty
            SearchToolFailure: the search tool failed
            ReconciliationLookupFailed: the dedup index was unreachable
        """
        query = sequence.strip()
        if not query:
            raise ValueError("query sequence is empty")

        start = time.monotonic()
        try:
            report = await self.tool.search(query)
            hits = await self.reconciler.reconcile(report.hits)
        except SeqHarvestError as e:
            increment("search_failures", labels={"error": type(e).__name__})
            raise

        duration = time.monotonic() - start
        histogram("search_duration_seconds", duration)
        logger.info("Search finished", hits=len(hits), duration_seconds=round(duration, 3))

        return SearchResults(
            query=query,
            hits=hits,
            version=report.version,
            reference=report.reference,
            db_num=report.db_num,
            duration_seconds=duration,
        )
