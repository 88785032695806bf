"""
Core data structures and collaborator contracts for SeqHarvest.

Records flow from the upstream source through the harvester into the
content-addressed stores; search hits flow from the search tool through the
reconciler back to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Protocol, Sequence


class HarvesterState(Enum):
    """States of a single harvester cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    STORING = "storing"
    ADVANCING = "advancing"
    SLEEPING = "sleeping"


@dataclass(frozen=True)
class SourceRecord:
    """One component definition as returned by the upstream source."""

    identifier: str
    raw_sequence: str
    created_at: datetime


@dataclass
class CycleResult:
    """Outcome of one harvester cycle."""

    offset: int
    fetched: int
    new_sequences: int
    cursor: int
    drained: bool


@dataclass(frozen=True)
class SearchHit:
    """A single search-tool hit; only the first HSP of each hit is kept."""

    content_hash: str
    score: int = 0
    bit_score: float = 0.0
    evalue: str = ""
    query_seq: str = ""
    midline: str = ""
    hit_seq: str = ""


@dataclass(frozen=True)
class ReconciledHit:
    """A search hit expanded to the source identifiers sharing its sequence."""

    hit: SearchHit
    identifiers: FrozenSet[str] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_hash": self.hit.content_hash,
            "score": self.hit.score,
            "bit_score": self.hit.bit_score,
            "evalue": self.hit.evalue,
            "query_seq": self.hit.query_seq,
            "midline": self.hit.midline,
            "hit_seq": self.hit.hit_seq,
            "identifiers": sorted(self.identifiers),
        }


@dataclass
class BlastReport:
    """Parsed search-tool output before reconciliation."""

    version: str = ""
    reference: str = ""
    db_num: int = 0
    hits: List[SearchHit] = field(default_factory=list)


@dataclass
class SearchResults:
    """Reconciled search results returned to callers."""

    query: str
    hits: List[ReconciledHit] = field(default_factory=list)
    version: str = ""
    reference: str = ""
    db_num: int = 0
    duration_seconds: float = 0.0

    @property
    def num_results(self) -> int:
        return len(self.hits)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "version": self.version,
            "reference": self.reference,
            "db_num": self.db_num,
            "duration_seconds": self.duration_seconds,
            "num_results": self.num_results,
            "hits": [hit.to_dict() for hit in self.hits],
        }


# ============================================================================
# Collaborator protocols
# ============================================================================


class RecordSource(Protocol):
    """Paginated upstream source of sequence records."""

    async def fetch_page(self, limit: int, offset: int) -> bytes:
        """Fetch the raw page at ``offset``; raises UpstreamUnavailable."""
        ...

    def parse_page(self, payload: bytes) -> List[SourceRecord]:
        """Decode a raw page; raises UpstreamUnavailable or MalformedRecord."""
        ...


class SearchTool(Protocol):
    """External similarity search tool."""

    async def search(self, sequence: str) -> BlastReport:
        ...


class IdentifierLookup(Protocol):
    """Read side of the dedup index used by the reconciler."""

    async def identifiers_for_many(self, content_hashes: Sequence[str]) -> List[FrozenSet[str]]:
        ...


class SleepScheduler(Protocol):
    """Cancellable sleep used between harvest cycles."""

    @property
    def cancelled(self) -> bool:
        ...

    async def sleep(self, seconds: float) -> bool:
        ...

    def cancel(self) -> None:
        ...

