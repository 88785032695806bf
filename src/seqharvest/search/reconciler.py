"""
Maps search-tool hits back to the source identifiers that produced them.
"""

from __future__ import annotations

from typing import List, Sequence

import structlog

from seqharvest.observability import increment
from seqharvest.protocols import IdentifierLookup, ReconciledHit, SearchHit

logger = structlog.get_logger(__name__)


class Reconciler:
    """
    Expands each hit's content hash into its identifier set.

    Output keeps the input ranking, one result per hit. A hash the index has
    not seen yet (the search corpus can be ahead of, or behind, ingestion)
    yields an empty set rather than an error. The only failure is an
    unreachable index, surfaced as ReconciliationLookupFailed with no partial
    results.
    """

    def __init__(self, index: IdentifierLookup):
        self.index = index

    async def reconcile(self, hits: Sequence[SearchHit]) -> List[ReconciledHit]:
        if not hits:
            return []

        identifier_sets = await self.index.identifiers_for_many([hit.content_hash for hit in hits])

        reconciled = []
        misses = 0
        for hit, identifiers in zip(hits, identifier_sets):
            if not identifiers:
                misses += 1
            reconciled.append(ReconciledHit(hit=hit, identifiers=frozenset(identifiers)))

        if misses:
            increment("reconcile_misses", misses)
            logger.info("Search hits without dedup entries", misses=misses, hits=len(hits))

        return reconciled
